"""
Runtime configuration for the memory engine.

Every knob has a default; ``MemoryConfig.from_env`` lets deployments override
them without code changes::

    HYBRID_MEMORY_CONSOLIDATION_THRESHOLD=200 python agent.py
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from hybrid_memory.exceptions import InvalidInputError

__all__ = ["MemoryConfig"]


@dataclass(frozen=True)
class MemoryConfig:
    """Tunables for buffer sizes, consolidation policy and collaborator timeouts."""

    observation_capacity: int = 50
    consolidation_threshold: int = 50
    consolidation_interval: float = 3600.0  # seconds
    min_bucket_size: int = 10
    min_group_size: int = 3
    summary_max_chars: int = 500
    embedding_timeout: Optional[float] = 10.0
    summary_timeout: Optional[float] = 30.0
    remote_timeout: Optional[float] = 3.0
    embedding_workers: int = 2
    model_name: str = "all-MiniLM-L6-v2"

    def __post_init__(self) -> None:
        if self.observation_capacity < 1:
            raise InvalidInputError("observation_capacity must be at least 1")
        if self.consolidation_threshold < 1:
            raise InvalidInputError("consolidation_threshold must be at least 1")
        if self.min_group_size < 1 or self.min_bucket_size < 1:
            raise InvalidInputError("min_bucket_size and min_group_size must be positive")
        if self.embedding_workers < 1:
            raise InvalidInputError("embedding_workers must be at least 1")

    @classmethod
    def from_env(
        cls,
        prefix: str = "HYBRID_MEMORY_",
        environ: Optional[Dict[str, str]] = None,
    ) -> "MemoryConfig":
        """Build a config from ``<prefix><FIELD_NAME>`` environment variables."""
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, raw, f.default)
        return cls(**overrides)

    def with_overrides(self, **changes: Any) -> "MemoryConfig":
        return replace(self, **changes)


def _coerce(name: str, raw: str, default: Any) -> Any:
    if raw.strip().lower() in ("none", "") and name.endswith("_timeout"):
        return None
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float) or name.endswith("_timeout"):
            return float(raw)
    except ValueError as e:
        raise InvalidInputError(f"Invalid value for {name}: {raw!r}") from e
    return raw
