# cascade.py
"""
Completion transitions, free of I/O.

complete() takes a workflow snapshot, the job that just ran and its outcome,
and returns the changed job records together with the successors that became
ready. The client persists the records and dispatches the ready jobs.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .errors import InvalidWorkflow, JobNotFound
from .job import Job
from .records import JobRecord
from .workflow import Workflow


@dataclass
class Transition:
    workflow: Workflow
    updated: List[JobRecord] = field(default_factory=list)
    ready: List[str] = field(default_factory=list)


def _job(snapshot: Workflow, name: str) -> Job:
    job = snapshot.find_job(name, exact=True)
    if job is None:
        raise InvalidWorkflow(f"Workflow {snapshot.id} has an edge to missing job {name}")
    return job


def predecessors(snapshot: Workflow, job: Job) -> List[Job]:
    return [_job(snapshot, name) for name in job.incoming]


def ready_successors(snapshot: Workflow, job: Job) -> List[str]:
    """
    Successors of `job` that may be enqueued now:
      a) the workflow is not stopped
      b) the successor is still pending
      c) every predecessor of the successor finished without failing
    """
    if snapshot.stopped:
        return []
    ready = []
    for name in job.outgoing:
        candidate = _job(snapshot, name)
        if candidate.ready(predecessors(snapshot, candidate)):
            ready.append(name)
    return ready


def candidates(snapshot: Workflow, job_name: str) -> List[str]:
    """
    Successors that must be re-checked against the store after `job_name`
    finished. The snapshot may predate a sibling's completion, so every
    successor of a succeeded job is a candidate. A failed job has none.
    """
    job = _job(snapshot, job_name)
    if not job.succeeded:
        return []
    return list(job.outgoing)


def upstream_params(preds: Iterable[Job]) -> Dict[str, Any]:
    """Outputs of the succeeded predecessors, keyed by predecessor name."""
    return {p.name: p.output for p in preds if p.succeeded}


def complete(snapshot: Workflow, job_name: str, success: bool, output: Any = None) -> Transition:
    """
    Finish `job_name` and work out what becomes ready.

    The snapshot is copied, never mutated. A failed job leaves every
    successor with a failed predecessor, so nothing downstream of it is
    returned as ready.

    `ready` is advisory: it reflects the snapshot only. Dispatch goes
    through candidates() and a re-check against the store, since a
    sibling may have finished after the snapshot was read.
    """
    flow = copy.deepcopy(snapshot)
    job = flow.find_job(job_name, exact=True)
    if job is None:
        raise JobNotFound(f"Workflow {flow.id} has no job {job_name}")

    job.mark_finished(success)
    job.output = output
    return Transition(workflow=flow, updated=[job.to_record()], ready=ready_successors(flow, job))
