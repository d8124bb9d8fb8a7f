"""prassign configuration."""

from __future__ import annotations

import os
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from prassign.storage.base import Storage

ENV_PREFIX = "PRASSIGN_"
MEMORY_URL = "memory://"


class MergePolicy(str, Enum):
    """What SetMerge does for a pull request that is already merged."""

    RESTAMP = "restamp"  # stamp merged_at again
    NOOP = "noop"        # return the PR unchanged
    REJECT = "reject"    # fail with PRMerged


class AssignmentConfig(BaseModel):
    """Top-level configuration for the assignment service."""

    # Storage; "memory://" selects the in-process backend
    database_url: str = "sqlite+aiosqlite:///prassign.db"
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=20, ge=0)
    pool_recycle: int = Field(default=1800, ge=-1)  # seconds, -1 disables
    echo_sql: bool = False

    # Assignment policy
    reviewers_per_pr: int = Field(default=2, ge=0)
    min_reviewers: int = Field(default=0, ge=0)  # 0 keeps partial assignment lenient
    merge_policy: MergePolicy = MergePolicy.RESTAMP

    # Per-command deadline (seconds)
    command_timeout: float = Field(default=10.0, gt=0)

    # HTTP
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_reviewer_bounds(self) -> AssignmentConfig:
        if self.min_reviewers > self.reviewers_per_pr:
            raise ValueError(
                f"min_reviewers ({self.min_reviewers}) cannot exceed "
                f"reviewers_per_pr ({self.reviewers_per_pr})"
            )
        return self

    @classmethod
    def from_env(cls, **overrides) -> AssignmentConfig:
        """Build a config from PRASSIGN_* environment variables.

        Explicit keyword overrides win over the environment; ``None`` values
        are ignored so CLI options can be passed through unconditionally.
        """
        values: dict = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)

    def create_storage(self) -> Storage:
        """Instantiate the storage backend selected by ``database_url``."""
        if self.database_url == MEMORY_URL:
            from prassign.storage.memory import MemoryStorage

            return MemoryStorage()

        from prassign.storage.sql import SQLStorage

        return SQLStorage(
            self.database_url,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_recycle=self.pool_recycle,
            echo=self.echo_sql,
        )
