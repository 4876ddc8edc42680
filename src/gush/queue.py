# queue.py
from __future__ import annotations

from typing import Optional

import redis
from pydantic import ValidationError

from .errors import SerializationError
from .records import QueueMessage


class JobQueue:
    """FIFO dispatch queue on a Redis list: push right, pop left."""

    def __init__(self, redis_client: redis.Redis, name: str, namespace: str = "gush",
                 worker_class: str = "gush.worker.Worker"):
        self.redis = redis_client
        self.name = name
        self.key = f"{namespace}:queue:{name}"
        self.worker_class = worker_class

    def message(self, workflow_id: str, job_name: str) -> QueueMessage:
        return QueueMessage(klass=self.worker_class, queue=self.name, args=[workflow_id, job_name])

    def push(self, workflow_id: str, job_name: str) -> QueueMessage:
        msg = self.message(workflow_id, job_name)
        self.redis.rpush(self.key, msg.model_dump_json(by_alias=True))
        return msg

    def pop(self, timeout_s: int = 5) -> Optional[QueueMessage]:
        item = self.redis.blpop([self.key], timeout=timeout_s)
        if not item:
            return None
        _q, raw = item
        try:
            return QueueMessage.model_validate_json(raw)
        except ValidationError as e:
            # already popped: the caller logs and drops it
            raise SerializationError(f"Malformed queue message: {raw!r}") from e

    def requeue(self, msg: QueueMessage) -> None:
        self.redis.lpush(self.key, msg.model_dump_json(by_alias=True))

    def size(self) -> int:
        return self.redis.llen(self.key)

    def clear(self) -> int:
        """Drop every pending message. Returns how many were dropped."""
        pending = self.size()
        self.redis.delete(self.key)
        return pending
