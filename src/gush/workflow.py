# workflow.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from . import dag
from .errors import InvalidWorkflow
from .job import Job
from .records import JobRecord, WorkflowRecord

if TYPE_CHECKING:
    from .registry import WorkflowRegistry


# A dependency can name a job class (every job of that class) or a job name.
Dependency = Union[Type[Job], str]


def _as_list(value: Union[None, Dependency, Sequence[Dependency]]) -> List[Dependency]:
    if value is None:
        return []
    if isinstance(value, (str, type)):
        return [value]
    return list(value)


class Workflow:
    """
    An owned set of jobs forming a DAG.

    Subclasses describe their topology in configure():

        class Publish(Workflow):
            def configure(self, url):
                self.run(Fetch, payload={"url": url})
                self.run(Parse, after=Fetch)
                self.run(Index, after=Parse)
                self.run(Notify, after=[Parse, Index])
    """

    def __init__(self, *arguments: Any):
        self.id: Optional[str] = None
        self.klass = type(self).__name__
        self.arguments: List[Any] = list(arguments)
        self.jobs: List[Job] = []
        self.stopped = False
        self.persisted = False
        self._edges: List[Tuple[str, List[Dependency], List[Dependency]]] = []

        self.configure(*arguments)
        self._resolve_dependencies()

    def __repr__(self) -> str:
        return f"<{self.klass} {self.id} {self.status} jobs={len(self.jobs)}>"

    def configure(self, *arguments: Any) -> None:
        """Override to declare jobs with run()."""

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def run(
        self,
        job_class: Type[Job],
        after: Union[None, Dependency, Sequence[Dependency]] = None,
        before: Union[None, Dependency, Sequence[Dependency]] = None,
        payload: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> str:
        """Add a job. Dependencies may be declared in any order; returns the job name."""
        job = job_class(name=name, payload=payload)
        if self.find_job(job.name, exact=True) is not None:
            raise InvalidWorkflow(f"Duplicate job name: {job.name}")
        self.jobs.append(job)
        self._edges.append((job.name, _as_list(after), _as_list(before)))
        return job.name

    def _matching(self, dep: Dependency) -> List[Job]:
        if isinstance(dep, type):
            found = [j for j in self.jobs if j.klass == dep.__name__]
        else:
            found = [j for j in self.jobs if j.name == dep] or [
                j for j in self.jobs if j.klass == dep
            ]
        if not found:
            label = dep.__name__ if isinstance(dep, type) else dep
            raise InvalidWorkflow(f"{self.klass}: dependency {label!r} matches no job")
        return found

    def _connect(self, src: Job, dst: Job) -> None:
        src.add_outgoing(dst.name)
        dst.add_incoming(src.name)

    def _resolve_dependencies(self) -> None:
        for name, after, before in self._edges:
            job = self.find_job(name, exact=True)
            for dep in after:
                for upstream in self._matching(dep):
                    self._connect(upstream, job)
            for dep in before:
                for downstream in self._matching(dep):
                    self._connect(job, downstream)
        self._edges = []
        if self.jobs:
            dag.validate(self.jobs)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def initial_jobs(self) -> List[Job]:
        return [j for j in self.jobs if not j.incoming]

    def find_job(self, name: str, exact: bool = False) -> Optional[Job]:
        """
        Exact name match. Unless `exact`, a bare class name also matches the
        first job of that class.
        """
        for job in self.jobs:
            if job.name == name:
                return job
        if exact:
            return None
        for job in self.jobs:
            if job.klass == name:
                return job
        return None

    def levels(self) -> List[List[str]]:
        return dag.validate(self.jobs)

    @property
    def failed(self) -> bool:
        return any(j.failed for j in self.jobs)

    @property
    def running(self) -> bool:
        return not self.failed and any(j.enqueued or j.running for j in self.jobs)

    @property
    def finished(self) -> bool:
        return all(j.finished for j in self.jobs) and not self.failed

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if self.finished:
            return "finished"
        if self.stopped:
            return "stopped"
        if self.running:
            return "running"
        return "pending"

    def progress(self) -> Tuple[int, int]:
        return sum(1 for j in self.jobs if j.finished), len(self.jobs)

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def mark_as_started(self) -> None:
        self.stopped = False

    def mark_as_stopped(self) -> None:
        self.stopped = True

    def mark_as_persisted(self) -> None:
        self.persisted = True

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def to_record(self) -> WorkflowRecord:
        return WorkflowRecord(
            id=self.id,
            klass=self.klass,
            arguments=list(self.arguments),
            stopped=self.stopped,
        )

    @classmethod
    def from_records(
        cls,
        registry: WorkflowRegistry,
        record: WorkflowRecord,
        job_records: Iterable[JobRecord],
    ) -> Workflow:
        """
        Rebuild a typed workflow from its stored records.

        The registry supplies the workflow class and, through a freshly
        configured instance, the job classes. The stored job records then
        replace the fresh job set, so stored topology and status win.
        """
        flow = registry.build(record.klass, record.arguments)
        classes: Dict[str, Type[Job]] = {j.klass: type(j) for j in flow.jobs}

        jobs = [classes.get(r.klass, Job).from_record(r) for r in job_records]
        by_name = {j.name: j for j in jobs}
        order = [name for level in dag.validate(jobs) for name in level]

        flow.jobs = [by_name[name] for name in order]
        flow.id = record.id
        flow.stopped = record.stopped
        flow.mark_as_persisted()
        return flow
