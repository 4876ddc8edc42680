# records.py
"""Stored shapes of workflows and jobs. Everything in Redis goes through these."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class WorkflowRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    klass: str
    arguments: List[Any] = Field(default_factory=list)
    stopped: bool = False


class JobRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    klass: str
    incoming: List[str] = Field(default_factory=list)
    outgoing: List[str] = Field(default_factory=list)
    enqueued: bool = False
    running: bool = False
    finished: bool = False
    failed: bool = False
    params: Dict[str, Any] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    enqueued_at: Optional[float] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


# Validates job outputs before they are stored with a JobRecord.
JOB_OUTPUT = TypeAdapter(Any)


class QueueMessage(BaseModel):
    """Dispatch message handed to the worker pool."""
    model_config = ConfigDict(populate_by_name=True)

    klass: str = Field(alias="class")
    queue: str
    args: List[str]

    @property
    def workflow_id(self) -> str:
        return self.args[0]

    @property
    def job_name(self) -> str:
        return self.args[1]
