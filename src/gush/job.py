# job.py
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from .errors import InvalidTransition
from .records import JobRecord


PENDING = "pending"
ENQUEUED = "enqueued"
RUNNING = "running"
FINISHED = "finished"


def generate_name(klass: str) -> str:
    return f"{klass}-{uuid.uuid4()}"


class Job:
    """
    A node of a workflow graph.

    Subclass it and override work(). Whatever work() returns becomes the
    job's output and is handed to each successor through its params,
    keyed by this job's name. Raising marks the job failed.

    Phases advance pending -> enqueued -> running -> finished and never go
    back. `failed` is set together with `finished` and never cleared.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        klass: Optional[str] = None,
        incoming: Optional[Iterable[str]] = None,
        outgoing: Optional[Iterable[str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        output: Any = None,
        enqueued: bool = False,
        running: bool = False,
        finished: bool = False,
        failed: bool = False,
        enqueued_at: Optional[float] = None,
        started_at: Optional[float] = None,
        finished_at: Optional[float] = None,
    ):
        self.klass = klass or type(self).__name__
        self.name = name or generate_name(self.klass)
        self.incoming: List[str] = []
        self.outgoing: List[str] = []
        for n in incoming or []:
            self.add_incoming(n)
        for n in outgoing or []:
            self.add_outgoing(n)
        self.payload: Dict[str, Any] = dict(payload or {})
        self.params: Dict[str, Any] = dict(params or {})
        self.output = output
        self.enqueued = enqueued
        self.running = running
        self.finished = finished
        self.failed = failed
        self.enqueued_at = enqueued_at
        self.started_at = started_at
        self.finished_at = finished_at

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.phase}{' failed' if self.failed else ''}>"

    # ------------------------------------------------------------------
    # User hook
    # ------------------------------------------------------------------

    def work(self) -> Any:
        raise NotImplementedError(f"{self.klass} does not implement work()")

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def add_incoming(self, name: str) -> None:
        if name not in self.incoming:
            self.incoming.append(name)

    def add_outgoing(self, name: str) -> None:
        if name not in self.outgoing:
            self.outgoing.append(name)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @property
    def phase(self) -> str:
        if self.finished:
            return FINISHED
        if self.running:
            return RUNNING
        if self.enqueued:
            return ENQUEUED
        return PENDING

    @property
    def pending(self) -> bool:
        return self.phase == PENDING

    @property
    def succeeded(self) -> bool:
        return self.finished and not self.failed

    def ready(self, predecessors: Iterable[Job]) -> bool:
        """True when this job is still pending and every predecessor succeeded."""
        if not self.pending:
            return False
        seen = {p.name: p for p in predecessors}
        return all(name in seen and seen[name].succeeded for name in self.incoming)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _require(self, phase: str, transition: str) -> None:
        if self.phase != phase:
            raise InvalidTransition(job=self.name, transition=transition, phase=self.phase)

    def mark_enqueued(self) -> None:
        self._require(PENDING, "enqueue")
        self.enqueued = True
        self.enqueued_at = time.time()

    def mark_started(self) -> None:
        self._require(ENQUEUED, "start")
        self.enqueued = False
        self.running = True
        self.started_at = time.time()

    def mark_finished(self, success: bool = True) -> None:
        self._require(RUNNING, "finish")
        self.running = False
        self.finished = True
        self.failed = self.failed or not success
        self.finished_at = time.time()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def to_record(self) -> JobRecord:
        return JobRecord(
            name=self.name,
            klass=self.klass,
            incoming=list(self.incoming),
            outgoing=list(self.outgoing),
            enqueued=self.enqueued,
            running=self.running,
            finished=self.finished,
            failed=self.failed,
            params=dict(self.params),
            payload=dict(self.payload),
            output=self.output,
            enqueued_at=self.enqueued_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    @classmethod
    def from_record(cls, record: JobRecord) -> Job:
        return cls(**record.model_dump())
