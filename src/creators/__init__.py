"""Creators: tracked accounts, their source URLs, and incremental fetch state."""

from src.creators.repository import CreatorRepository
from src.creators.schemas import (
    Creator,
    CreatorUrl,
    FetchState,
    FetchStateConflictError,
)

__all__ = [
    "Creator",
    "CreatorUrl",
    "CreatorRepository",
    "FetchState",
    "FetchStateConflictError",
]
