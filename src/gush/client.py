# client.py
from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

import redis

from . import cascade
from .config import Configuration
from .errors import InvalidTransition, JobNotFound, WorkflowNotFound
from .job import Job
from .queue import JobQueue
from .records import JobRecord
from .registry import WorkflowRegistry
from .store import WORKERS_CHANNEL, WORKFLOWS_CHANNEL, Store
from .workflow import Workflow

logger = logging.getLogger(__name__)

LOCK_RETRY_INTERVAL = 0.05


def build_redis(configuration: Configuration) -> redis.Redis:
    """
    Redis client over a blocking pool sized by `concurrency`.
    A caller waits up to `pool_timeout` for a free connection, then gets
    redis.ConnectionError.
    """
    pool = redis.BlockingConnectionPool.from_url(
        configuration.redis_url,
        max_connections=configuration.concurrency,
        timeout=configuration.pool_timeout,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


class Client:
    """
    Scheduler: the only component that mutates stored workflow state.

    Starting a workflow enqueues its initial jobs. Finishing a job records
    the outcome and then enqueues each successor whose predecessors have
    all succeeded, holding a per-job lock while it re-reads the store.
    """

    def __init__(
        self,
        configuration: Optional[Configuration] = None,
        registry: Optional[WorkflowRegistry] = None,
        redis_client: Optional[redis.Redis] = None,
    ):
        self.configuration = configuration or Configuration()
        self.registry = registry if registry is not None else WorkflowRegistry()
        self.redis = redis_client if redis_client is not None else build_redis(self.configuration)
        self.store = Store(self.redis, namespace=self.configuration.namespace)
        self.queue = JobQueue(
            self.redis,
            self.configuration.queue,
            namespace=self.configuration.namespace,
            worker_class=self.configuration.worker_class,
        )

    # ------------------------------------------------------------------
    # Creation / lookup
    # ------------------------------------------------------------------

    def next_free_workflow_id(self) -> str:
        while True:
            workflow_id = str(uuid.uuid4())
            if not self.store.workflow_exists(workflow_id):
                return workflow_id

    def create_workflow(self, type_tag: str, *arguments: Any) -> str:
        """Build a workflow of a registered type, persist it, return its id."""
        flow = self.registry.build(type_tag, arguments)
        flow.id = self.next_free_workflow_id()
        self.persist_workflow(flow)
        logger.info("Created workflow %s (%s) with %d jobs", flow.id, type_tag, len(flow.jobs))
        return flow.id

    def find_workflow(self, workflow_id: str) -> Workflow:
        record = self.store.read_workflow(workflow_id)
        if record is None:
            raise WorkflowNotFound(f"Workflow with id {workflow_id} doesn't exist")
        return Workflow.from_records(self.registry, record, self.store.read_jobs(workflow_id))

    def all_workflows(self) -> List[Workflow]:
        flows = []
        for workflow_id in self.store.workflow_ids():
            try:
                flows.append(self.find_workflow(workflow_id))
            except WorkflowNotFound:
                logger.debug("Workflow %s was destroyed while listing", workflow_id)
        return flows

    def load_job(self, workflow_id: str, job_name: str) -> Job:
        """Typed job from a freshly read workflow. A bare class name also matches."""
        job = self.find_workflow(workflow_id).find_job(job_name)
        if job is None:
            raise JobNotFound(f"Workflow {workflow_id} has no job {job_name}")
        return job

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_workflow(self, flow: Workflow) -> bool:
        """Write every job record, then the workflow record that makes them findable."""
        for job in flow.jobs:
            self.persist_job(flow.id, job)
        self.store.write_workflow(flow.to_record())
        flow.mark_as_persisted()
        return True

    def persist_job(self, workflow_id: str, job: Job) -> None:
        self.store.write_job(workflow_id, job.to_record())

    def destroy_workflow(self, workflow_id: str) -> None:
        removed = self.store.delete_workflow(workflow_id)
        if not removed:
            raise WorkflowNotFound(f"Workflow with id {workflow_id} doesn't exist")
        logger.info("Destroyed workflow %s (%d keys)", workflow_id, removed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_workflow(self, workflow_id: str, job_names: Sequence[str] = ()) -> List[str]:
        """
        Clear the stopped flag and enqueue work.

        With `job_names`, only those jobs are enqueued, whatever their
        predecessors' state. Otherwise every job whose predecessors all
        succeeded is enqueued: the initial jobs of a fresh workflow, or the
        jobs a stopped workflow was waiting on.

        Returns the names actually enqueued.
        """
        flow = self.find_workflow(workflow_id)

        if job_names:
            jobs = []
            for name in job_names:
                job = flow.find_job(name)
                if job is None:
                    raise JobNotFound(f"Workflow {workflow_id} has no job {name}")
                if not job.pending:
                    raise InvalidTransition(job=job.name, transition="enqueue", phase=job.phase)
                jobs.append(job)
        else:
            jobs = [j for j in flow.jobs if j.ready(cascade.predecessors(flow, j))]

        flow.mark_as_started()
        self.store.write_workflow(flow.to_record())
        self.workflow_report({"status": "started", "workflow_id": workflow_id})

        enqueued = []
        for job in jobs:
            if self._enqueue_if_ready(workflow_id, job.name, check_predecessors=not job_names):
                enqueued.append(job.name)
        logger.info("Started workflow %s, enqueued %s", workflow_id, enqueued)
        return enqueued

    def stop_workflow(self, workflow_id: str) -> None:
        """Stop further enqueues. Jobs already enqueued or running still complete."""
        flow = self.find_workflow(workflow_id)
        flow.mark_as_stopped()
        # workflow record only; job records belong to the workers
        self.store.write_workflow(flow.to_record())
        self.workflow_report({"status": "stopped", "workflow_id": workflow_id})
        logger.info("Stopped workflow %s", workflow_id)

    def enqueue_job(self, workflow_id: str, job: Job) -> None:
        """Mark enqueued, persist, then dispatch; stored state never lags the queue."""
        job.mark_enqueued()
        self.persist_job(workflow_id, job)
        self.queue.push(workflow_id, job.name)
        logger.debug(
            "Enqueued %s/%s", workflow_id, job.name,
            extra={"workflow_id": workflow_id, "job": job.name},
        )

    # ------------------------------------------------------------------
    # Worker-side transitions
    # ------------------------------------------------------------------

    def start_job(self, workflow_id: str, job: Job) -> None:
        job.mark_started()
        self.persist_job(workflow_id, job)
        self.worker_report({"status": "started", "workflow_id": workflow_id, "job": job.name})

    def finish_job(self, workflow_id: str, job_name: str, success: bool, output: Any = None) -> List[str]:
        """
        Completion path. Records the outcome, then runs the cascade.

        Returns the successors this call enqueued.
        """
        snapshot = self.find_workflow(workflow_id)
        try:
            transition = cascade.complete(snapshot, job_name, success, output)
        except InvalidTransition as e:
            logger.error(
                "Rejected completion of %s/%s: %s", workflow_id, job_name, e,
                extra={"workflow_id": workflow_id, "job": job_name},
            )
            raise

        for record in transition.updated:
            self.store.write_job(workflow_id, record)
        self.worker_report({
            "status": "finished" if success else "failed",
            "workflow_id": workflow_id,
            "job": job_name,
        })

        enqueued = self._cascade(workflow_id, transition.workflow, job_name)
        logger.info(
            "Job %s/%s %s, enqueued %s",
            workflow_id, job_name, "finished" if success else "failed", enqueued,
            extra={"workflow_id": workflow_id, "job": job_name},
        )
        return enqueued

    def resume_cascade(self, workflow_id: str, job_name: str) -> List[str]:
        """
        Re-run the cascade of an already finished job.

        Used when a completion was recorded but dispatching its successors
        was interrupted. Successors already enqueued are skipped.
        """
        flow = self.find_workflow(workflow_id)
        if flow.find_job(job_name, exact=True) is None:
            raise JobNotFound(f"Workflow {workflow_id} has no job {job_name}")
        enqueued = self._cascade(workflow_id, flow, job_name)
        if enqueued:
            logger.info(
                "Resumed cascade of %s/%s, enqueued %s", workflow_id, job_name, enqueued,
                extra={"workflow_id": workflow_id, "job": job_name},
            )
        return enqueued

    def _cascade(self, workflow_id: str, flow: Workflow, job_name: str) -> List[str]:
        enqueued = [
            name for name in cascade.candidates(flow, job_name)
            if self._enqueue_if_ready(workflow_id, name)
        ]
        if flow.finished:
            self.workflow_report({"status": "finished", "workflow_id": workflow_id})
        return enqueued

    # ------------------------------------------------------------------
    # Locked enqueue
    # ------------------------------------------------------------------

    def _acquire(self, workflow_id: str, job_name: str) -> Optional[str]:
        deadline = time.monotonic() + self.configuration.lock_wait
        while True:
            token = self.store.acquire_lock(workflow_id, job_name, self.configuration.lock_ttl)
            if token is not None or time.monotonic() >= deadline:
                return token
            time.sleep(LOCK_RETRY_INTERVAL)

    def _read_jobs(self, workflow_id: str, names: Iterable[str]) -> Dict[str, Optional[JobRecord]]:
        return {name: self.store.read_job(workflow_id, name) for name in names}

    def _enqueue_if_ready(self, workflow_id: str, job_name: str, check_predecessors: bool = True) -> bool:
        """
        Enqueue `job_name` under its enqueue lock, re-checking everything
        against the store. Skips silently when the lock stays held by
        another worker or the job is no longer eligible.
        """
        token = self._acquire(workflow_id, job_name)
        if token is None:
            logger.debug("Enqueue lock for %s/%s is held elsewhere, skipping", workflow_id, job_name)
            return False
        try:
            record = self.store.read_workflow(workflow_id)
            if record is None or record.stopped:
                return False

            job_record = self.store.read_job(workflow_id, job_name)
            if job_record is None:
                logger.warning("Job %s/%s vanished before enqueue", workflow_id, job_name)
                return False
            job = Job.from_record(job_record)
            if not job.pending:
                return False

            found = self._read_jobs(workflow_id, job.incoming)
            preds = [Job.from_record(r) for r in found.values() if r is not None]
            if check_predecessors and not job.ready(preds):
                return False

            job.params.update(cascade.upstream_params(preds))
            self.enqueue_job(workflow_id, job)
            return True
        finally:
            self.store.release_lock(workflow_id, job_name, token)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def worker_report(self, message: Dict[str, Any]) -> None:
        self.store.publish(WORKERS_CHANNEL, message)

    def workflow_report(self, message: Dict[str, Any]) -> None:
        self.store.publish(WORKFLOWS_CHANNEL, message)
