"""
Sync data models -- configuration, plans, and batch reports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StorageBackendType(str, Enum):
    """Supported object store backends."""

    LOCALHOST = "localhost"
    OSS = "oss"


class LocalStoreConfig(BaseModel):
    """Filesystem-rooted store: keys are paths under ``work_dir``."""

    work_dir: Path


class CloudStoreConfig(BaseModel):
    """S3-compatible object storage (Aliyun OSS, AWS S3, MinIO)."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = Field(default=None, repr=False)
    bucket_name: str
    region: Optional[str] = None
    work_dir: str = Field(default="", alias="workDir")


class StorageConfig(BaseModel):
    """Which backend to use, plus its settings."""

    remote_type: StorageBackendType = StorageBackendType.LOCALHOST
    localhost: Optional[LocalStoreConfig] = None
    oss: Optional[CloudStoreConfig] = None


class FersConfig(BaseModel):
    """Complete fers configuration."""

    crypto_key: str = Field(min_length=1, repr=False)
    target_dir: Path
    log: Optional[Path] = None
    # slog-style: -4 debug, 0 info, 4 warn, 8 error
    log_level: int = 0
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("target_dir")
    @classmethod
    def _expand_target(cls, value: Path) -> Path:
        return value.expanduser()


class SyncPlan(BaseModel):
    """Keys that exist on only one side."""

    to_upload: list[str] = Field(default_factory=list)
    to_download: list[str] = Field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.to_upload and not self.to_download


class SyncReport(BaseModel):
    """Outcome of a fail-soft batch operation."""

    operation: str
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    transferred: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
