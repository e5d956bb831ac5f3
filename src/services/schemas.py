"""
Result types for refresh runs.

Every trigger (manual API, cron, CLI) returns the same RefreshRunResult
shape; to_dict() produces the JSON body the API sends.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.ingestion.schemas import Platform


class RefreshFailedError(Exception):
    """The run could not start, e.g. creators could not be listed."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class RefreshTrigger(str, Enum):
    MANUAL = "manual"
    CRON = "cron"
    LINKEDIN_CRON = "linkedin_cron"


class UrlStatus(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EMPTY = "empty"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UrlStatus.EMPTY, UrlStatus.SUCCESS, UrlStatus.ERROR)


@dataclass
class UrlRefreshResult:
    """Outcome of refreshing a single creator URL."""

    url: str
    platform: Platform
    status: UrlStatus = UrlStatus.PENDING
    fetched: int | None = None
    new: int | None = None
    updated: int | None = None
    errors: int | None = None
    error: str | None = None
    message: str | None = None

    def mark_error(self, error: str) -> None:
        self.status = UrlStatus.ERROR
        self.error = error

    def add_message(self, message: str) -> None:
        self.message = f"{self.message}; {message}" if self.message else message

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "platform": Platform(self.platform).value,
            "status": self.status.value,
        }
        for name in ("fetched", "new", "updated", "errors", "error", "message"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class CreatorRefreshResult:
    id: str
    name: str
    urls: list[UrlRefreshResult] = field(default_factory=list)

    @property
    def new(self) -> int:
        return sum(u.new or 0 for u in self.urls)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "urls": [u.to_dict() for u in self.urls],
        }


@dataclass
class LinkedInCreatorStats:
    """Per-creator line of the batched LinkedIn run."""

    id: str
    name: str
    url: str | None
    status: str
    fetched: int = 0
    new: int = 0
    updated: int = 0
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "status": self.status,
            "fetched": self.fetched,
            "new": self.new,
            "updated": self.updated,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class LinkedInRunStats:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: int = 0
    creators: list[LinkedInCreatorStats] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "creators": [c.to_dict() for c in self.creators],
        }


@dataclass
class RunStats:
    """Totals across every creator and URL of a run."""

    processed: int = 0
    new: int = 0
    updated: int = 0
    errors: int = 0
    creators: list[CreatorRefreshResult] = field(default_factory=list)
    summary_generation_error: str | None = None
    linkedin: LinkedInRunStats | None = None

    def add_url(self, result: UrlRefreshResult) -> None:
        self.processed += result.fetched or 0
        self.new += result.new or 0
        self.updated += result.updated or 0
        self.errors += result.errors or 0
        if result.status == UrlStatus.ERROR:
            self.errors += 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "processed": self.processed,
            "new": self.new,
            "updated": self.updated,
            "errors": self.errors,
            "creators": [c.to_dict() for c in self.creators],
        }
        if self.summary_generation_error:
            data["summaryGenerationError"] = self.summary_generation_error
        if self.linkedin is not None:
            data["linkedin"] = self.linkedin.to_dict()
        return data


@dataclass
class RefreshRunResult:
    success: bool
    message: str
    stats: RunStats
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stats": self.stats.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
