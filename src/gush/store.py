# store.py
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

import redis
from pydantic import BaseModel, ValidationError

from .errors import SerializationError
from .records import JobRecord, WorkflowRecord

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

WORKFLOWS = "gush.workflows"
JOBS = "gush.jobs"
LOCKS = "gush.locks"
WORKERS_CHANNEL = "gush.workers.status"
WORKFLOWS_CHANNEL = "gush.workflows.status"


def _decode(model: Type[R], raw: str, key: str) -> R:
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise SerializationError(f"Malformed record at {key}: {e}") from e


class Store:
    """
    Persistence gateway: one JSON record per workflow, one per job.

    Every write is a single-key SET; Redis is the only source of truth.

      <ns>:gush.workflows.<workflow_id>
      <ns>:gush.jobs.<workflow_id>.<job_name>
      <ns>:gush.locks.<workflow_id>.<job_name>.enqueue
    """

    def __init__(self, redis_client: redis.Redis, namespace: str = "gush"):
        self.redis = redis_client
        self.namespace = namespace

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def key(self, name: str) -> str:
        return f"{self.namespace}:{name}"

    def workflow_key(self, workflow_id: str) -> str:
        return self.key(f"{WORKFLOWS}.{workflow_id}")

    def job_key(self, workflow_id: str, job_name: str) -> str:
        return self.key(f"{JOBS}.{workflow_id}.{job_name}")

    def lock_key(self, workflow_id: str, job_name: str) -> str:
        return self.key(f"{LOCKS}.{workflow_id}.{job_name}.enqueue")

    def _scan(self, pattern: str) -> Iterator[str]:
        return self.redis.scan_iter(match=pattern, count=500)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def write_workflow(self, record: WorkflowRecord) -> None:
        self.redis.set(self.workflow_key(record.id), record.model_dump_json())

    def read_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        key = self.workflow_key(workflow_id)
        raw = self.redis.get(key)
        if raw is None:
            return None
        return _decode(WorkflowRecord, raw, key)

    def workflow_exists(self, workflow_id: str) -> bool:
        return bool(self.redis.exists(self.workflow_key(workflow_id)))

    def workflow_ids(self) -> List[str]:
        prefix = self.workflow_key("")
        return sorted(k[len(prefix):] for k in self._scan(prefix + "*"))

    def delete_workflow(self, workflow_id: str) -> int:
        """
        Remove the workflow record, then every job record under its id.

        Not atomic. The workflow key goes first so a half-deleted workflow
        is already unfindable.
        """
        removed = self.redis.delete(self.workflow_key(workflow_id))
        keys = list(self._scan(self.job_key(workflow_id, "*")))
        if keys:
            removed += self.redis.delete(*keys)
        return removed

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def write_job(self, workflow_id: str, record: JobRecord) -> None:
        self.redis.set(self.job_key(workflow_id, record.name), record.model_dump_json())

    def read_job(self, workflow_id: str, job_name: str) -> Optional[JobRecord]:
        key = self.job_key(workflow_id, job_name)
        raw = self.redis.get(key)
        if raw is None:
            return None
        return _decode(JobRecord, raw, key)

    def read_jobs(self, workflow_id: str) -> List[JobRecord]:
        """Prefix scan plus one MGET for every job of a workflow."""
        keys = sorted(self._scan(self.job_key(workflow_id, "*")))
        if not keys:
            return []
        records = []
        for key, raw in zip(keys, self.redis.mget(keys)):
            # deleted between SCAN and MGET
            if raw is None:
                continue
            records.append(_decode(JobRecord, raw, key))
        return records

    def job_exists(self, workflow_id: str, job_name: str) -> bool:
        return bool(self.redis.exists(self.job_key(workflow_id, job_name)))

    # ------------------------------------------------------------------
    # Enqueue locks
    # ------------------------------------------------------------------

    def acquire_lock(self, workflow_id: str, job_name: str, ttl: int) -> Optional[str]:
        """SET NX EX. Returns the owner token, or None when already held."""
        token = uuid.uuid4().hex
        got = self.redis.set(self.lock_key(workflow_id, job_name), token, nx=True, ex=ttl)
        return token if got else None

    def release_lock(self, workflow_id: str, job_name: str, token: str) -> bool:
        """Delete the lock only if `token` still owns it."""
        key = self.lock_key(workflow_id, job_name)
        with self.redis.pipeline() as pipe:
            try:
                pipe.watch(key)
                if pipe.get(key) != token:
                    pipe.unwatch()
                    logger.warning("Enqueue lock %s expired before release", key)
                    return False
                pipe.multi()
                pipe.delete(key)
                pipe.execute()
                return True
            except redis.WatchError:
                logger.warning("Enqueue lock %s changed hands before release", key)
                return False

    # ------------------------------------------------------------------
    # Status channels
    # ------------------------------------------------------------------

    def publish(self, channel: str, message: Dict[str, Any]) -> int:
        return self.redis.publish(self.key(channel), json.dumps(message))
