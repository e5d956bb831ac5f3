"""Refresh orchestration: runs fetch -> normalize -> store for tracked creators."""

from src.services.config import RefreshConfig
from src.services.refresh_service import RefreshService
from src.services.schemas import (
    CreatorRefreshResult,
    RefreshFailedError,
    RefreshRunResult,
    RefreshTrigger,
    RunStats,
    UrlRefreshResult,
    UrlStatus,
)

__all__ = [
    "CreatorRefreshResult",
    "RefreshConfig",
    "RefreshFailedError",
    "RefreshRunResult",
    "RefreshService",
    "RefreshTrigger",
    "RunStats",
    "UrlRefreshResult",
    "UrlStatus",
]
