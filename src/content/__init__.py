"""Content store: idempotent persistence of normalized content."""

from src.content.repository import ContentRepository
from src.content.schemas import (
    BatchStoreResult,
    ContentError,
    StoreError,
    StoreOutcome,
)
from src.content.service import ContentService

__all__ = [
    "BatchStoreResult",
    "ContentError",
    "ContentRepository",
    "ContentService",
    "StoreError",
    "StoreOutcome",
]
