"""Content ingestion - platform detection, fetchers, and normalization."""

from src.ingestion.schemas import (
    Content,
    CreateContentInput,
    EngagementMetrics,
    MediaType,
    MediaUrl,
    Platform,
    ReferenceType,
)

__all__ = [
    "Platform",
    "MediaType",
    "MediaUrl",
    "EngagementMetrics",
    "ReferenceType",
    "CreateContentInput",
    "Content",
]
