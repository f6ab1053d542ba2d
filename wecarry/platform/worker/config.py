"""Configuration helpers for the background job worker."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass
class WorkerConfig:
    """Runtime knobs for the worker pool."""

    pool_size: int
    poll_interval: float
    max_attempts: int
    backoff_seconds: float
    backoff_multiplier: float
    backoff_cap_seconds: float

    @classmethod
    def from_env(cls, overrides: Optional[Mapping[str, Any]] = None) -> "WorkerConfig":
        """Build config from environment with sensible defaults.

        ``overrides`` (usually ``app.config``) wins over the process environment.
        """
        overrides = overrides or {}

        def _get(key: str, default: str) -> Any:
            if key in overrides:
                return overrides[key]
            return os.environ.get(key, default)

        return cls(
            pool_size=int(_get("WORKER_POOL_SIZE", "4")),
            poll_interval=float(_get("WORKER_POLL_INTERVAL", "1")),
            max_attempts=int(_get("WORKER_MAX_ATTEMPTS", "5")),
            backoff_seconds=float(_get("WORKER_BACKOFF_SECONDS", "5")),
            backoff_multiplier=float(_get("WORKER_BACKOFF_MULTIPLIER", "2")),
            backoff_cap_seconds=float(_get("WORKER_BACKOFF_CAP_SECONDS", "300")),
        )
