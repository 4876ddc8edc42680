# worker.py
from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import redis

from .client import Client
from .errors import InvalidTransition, JobExecutionFailure, JobNotFound, SerializationError, WorkflowNotFound
from .records import JOB_OUTPUT, QueueMessage

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of one job's work()."""
    success: bool
    output: Any = None
    failure: Optional[JobExecutionFailure] = None


class Worker:
    """
    Pulls (workflow_id, job_name) messages off the queue, runs the job and
    reports the outcome to the client, which cascades.

    Store and queue errors are not job failures: the message goes back on
    the queue and the loop backs off.
    """

    def __init__(self, client: Client, backoff: float = 1.0, stop_event: Optional[threading.Event] = None):
        self.client = client
        self.backoff = backoff
        self.stop_event = stop_event or threading.Event()

    @property
    def running(self) -> bool:
        return not self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def execute(self, job) -> ExecutionResult:
        try:
            output = job.work()
            # an output that cannot be stored fails the job
            JOB_OUTPUT.dump_json(output)
            return ExecutionResult(success=True, output=output)
        except Exception as e:
            failure = JobExecutionFailure(job=job.name, error_type=type(e).__name__, message=str(e))
            logger.exception("Job %s failed", job.name, extra={"job": job.name})
            return ExecutionResult(success=False, output=failure.to_dict(), failure=failure)

    def perform(self, workflow_id: str, job_name: str) -> ExecutionResult:
        """
        Run one job end to end.

        Raises WorkflowNotFound / JobNotFound for stale messages and
        InvalidTransition when the job was never enqueued.

        A message can come back after an infrastructure error. A job
        already running is executed again without the start transition;
        a job already finished only has its cascade resumed.
        """
        flow = self.client.find_workflow(workflow_id)
        job = flow.find_job(job_name, exact=True)
        if job is None:
            raise JobNotFound(f"Workflow {workflow_id} has no job {job_name}")
        if job.finished:
            logger.info(
                "Job %s/%s already finished, resuming its cascade", workflow_id, job_name,
                extra={"workflow_id": workflow_id, "job": job_name},
            )
            self.client.resume_cascade(workflow_id, job_name)
            return ExecutionResult(success=not job.failed, output=job.output)

        if job.running:
            logger.warning(
                "Job %s/%s redelivered while running, executing again", workflow_id, job_name,
                extra={"workflow_id": workflow_id, "job": job_name},
            )
        else:
            self.client.start_job(workflow_id, job)
        result = self.execute(job)
        self.client.finish_job(workflow_id, job.name, result.success, result.output)
        return result

    def handle(self, msg: QueueMessage) -> None:
        try:
            self.perform(msg.workflow_id, msg.job_name)
        except (WorkflowNotFound, JobNotFound) as e:
            logger.warning("Dropping message %s: %s", msg.args, e)
        except InvalidTransition as e:
            logger.error("Dropping message %s: %s", msg.args, e)
        except (redis.RedisError, SerializationError) as e:
            logger.warning("Infrastructure error on %s, requeueing: %s", msg.args, e)
            self.client.queue.requeue(msg)
            self.stop_event.wait(self.backoff)
        except Exception:
            logger.exception("Dropping message %s after unexpected error", msg.args)

    def run_once(self, timeout_s: Optional[int] = None) -> bool:
        """Pop and handle one message. False when the queue stayed empty."""
        timeout_s = self.client.configuration.poll_timeout if timeout_s is None else timeout_s
        try:
            msg = self.client.queue.pop(timeout_s=timeout_s)
        except SerializationError as e:
            logger.error("Dropping queue message: %s", e)
            return True
        if msg is None:
            return False
        self.handle(msg)
        return True

    def run(self) -> None:
        """Run the worker loop until stop() is called."""
        logger.info("Worker listening on %s", self.client.queue.key)
        while self.running:
            try:
                self.run_once()
            except redis.RedisError as e:
                logger.warning("Queue unavailable: %s", e)
                self.stop_event.wait(self.backoff)
            except Exception:
                logger.exception("Worker loop error")
                self.stop_event.wait(self.backoff)
        logger.info("Worker stopped")


def run_workers(client: Client, concurrency: Optional[int] = None, install_signals: bool = True) -> None:
    """
    Run `concurrency` worker loops on a thread pool until SIGINT/SIGTERM.
    All loops share the client's connection pool.
    """
    concurrency = concurrency or client.configuration.concurrency
    stop_event = threading.Event()

    if install_signals:
        def _signal_handler(signum, frame):
            logger.info("Received signal %s, shutting down gracefully...", signum)
            stop_event.set()

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

    started = time.time()
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="gush-worker") as pool:
        futures = [pool.submit(Worker(client, stop_event=stop_event).run) for _ in range(concurrency)]
        for fut in futures:
            fut.result()
    logger.info("%d workers stopped after %.1fs", concurrency, time.time() - started)
