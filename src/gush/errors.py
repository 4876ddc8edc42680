# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class GushError(Exception):
    """Base class for every error raised by gush itself."""


class WorkflowNotFound(GushError):
    """Raised when no workflow record exists for an id."""


class JobNotFound(GushError):
    """Raised when a workflow has no job with the requested name."""


class UnknownWorkflowType(GushError):
    """Raised when a type tag is not present in the workflow registry."""


class InvalidWorkflow(GushError):
    """Raised when a job graph has a cycle, a dangling edge or a duplicate name."""


class SerializationError(GushError):
    """
    Raised when a stored record cannot be decoded.

    Treated as an infrastructure error: the worker retries instead of
    recording a job failure.
    """


@dataclass
class InvalidTransition(GushError):
    """
    A job phase change requested out of order.

    Carries enough context to log the rejected transition without
    re-reading the job.
    """
    job: str
    transition: str
    phase: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        msg = f"cannot {self.transition} job {self.job} while {self.phase}"
        for k, v in self.details.items():
            msg += f" {k}={v}"
        return msg


@dataclass
class JobExecutionFailure(GushError):
    """The job's own work() raised. Recorded through the failed flag."""
    job: str
    error_type: str
    message: str

    def __str__(self) -> str:
        return f"[{self.job}] {self.error_type}: {self.message}"

    def to_dict(self) -> dict:
        return {"error": self.message, "error_type": self.error_type}
