from .client import Client
from .config import Configuration
from .errors import (
    GushError,
    InvalidTransition,
    InvalidWorkflow,
    JobExecutionFailure,
    JobNotFound,
    SerializationError,
    UnknownWorkflowType,
    WorkflowNotFound,
)
from .job import Job
from .registry import WorkflowRegistry
from .worker import Worker, run_workers
from .workflow import Workflow

__all__ = [
    "Client",
    "Configuration",
    "GushError",
    "InvalidTransition",
    "InvalidWorkflow",
    "Job",
    "JobExecutionFailure",
    "JobNotFound",
    "SerializationError",
    "UnknownWorkflowType",
    "Worker",
    "Workflow",
    "WorkflowNotFound",
    "WorkflowRegistry",
    "run_workers",
]
