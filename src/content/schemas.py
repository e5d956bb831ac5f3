"""Result and error types for the content store."""

from dataclasses import dataclass, field
from enum import Enum


class ContentError(Exception):
    """Content store failure with a machine-readable code and HTTP status."""

    DUPLICATE_CONTENT = "DUPLICATE_CONTENT"
    INVALID_PLATFORM = "INVALID_PLATFORM"
    CREATOR_NOT_FOUND = "CREATOR_NOT_FOUND"
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"

    def __init__(self, message: str, code: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class StoreOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class StoreError:
    """One item that failed validation or storage within a batch."""

    platform_content_id: str | None
    message: str
    code: str
    url: str | None = None

    def to_dict(self) -> dict:
        return {
            "platform_content_id": self.platform_content_id,
            "url": self.url,
            "message": self.message,
            "code": self.code,
        }


@dataclass
class BatchStoreResult:
    """
    Per-batch accounting.

    created + updated + skipped + len(errors) equals the number of items
    submitted.
    """

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[StoreError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + len(self.errors)

    def record(self, outcome: StoreOutcome) -> None:
        if outcome == StoreOutcome.CREATED:
            self.created += 1
        elif outcome == StoreOutcome.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1
