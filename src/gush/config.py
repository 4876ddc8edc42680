# config.py
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional


ENV_PREFIX = "GUSH_"


@dataclass
class Configuration:
    """
    Settings consumed by the client, the workers and the command surfaces.

    One instance is built at process start and passed explicitly to
    everything that needs it; nothing reads a module-level singleton.
    """
    concurrency: int = 5
    redis_url: str = "redis://localhost:6379"
    namespace: str = "gush"
    queue: str = "gush"
    gushfile: str = "Gushfile.py"
    environment: str = "development"

    # seconds to wait for a free pooled connection
    pool_timeout: float = 10.0
    # lifetime of a per-job enqueue lock, and how long to wait for one
    lock_ttl: int = 30
    lock_wait: float = 2.0
    # BLPOP timeout for idle workers
    poll_timeout: int = 5
    worker_class: str = "gush.worker.Worker"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if not self.namespace:
            raise ValueError("namespace must not be empty")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Configuration:
        """Build from a mapping, ignoring keys this class does not know."""
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in known and value is not None:
                kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_json(cls, raw: str) -> Configuration:
        return cls.from_dict(json.loads(raw))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Configuration:
        """
        Read GUSH_* environment variables (GUSH_REDIS_URL, GUSH_CONCURRENCY, ...).

        Values are coerced to the type of the field's default.
        """
        environ = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            kind = type(f.default)
            kwargs[f.name] = kind(raw) if kind in (int, float) else raw
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
