"""
Content store service.

Idempotent storage of normalized items keyed by
(creator_id, platform, platform_content_id):

    new key            -> created
    known key, changed -> updated (mutable fields only, updated_at bumped)
    known key, same    -> skipped

New items also get a content hash. When other rows of the same creator
share it (or, for social posts, have near-identical text) they are put
in one duplicate group and the highest-priority platform is primary.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg
import structlog
from pydantic import ValidationError

from src.content.deduplication import (
    SIMILARITY_THRESHOLD,
    SIMILARITY_WINDOW_DAYS,
    SOCIAL_PLATFORMS,
    DuplicateResolution,
    dedup_text,
    generate_content_hash,
    normalize_text,
    resolve_duplicates,
    text_similarity,
)
from src.content.repository import ContentRepository
from src.content.schemas import (
    BatchStoreResult,
    ContentError,
    StoreError,
    StoreOutcome,
)
from src.ingestion.schemas import Content, CreateContentInput, Platform
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

# Fields a re-fetch may legitimately change.
MUTABLE_FIELDS = (
    "engagement_metrics",
    "description",
    "title",
    "thumbnail_url",
    "media_urls",
    "content_body",
    "word_count",
    "reading_time_minutes",
)


def _comparable(value: Any) -> Any:
    if isinstance(value, list):
        return [_comparable(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", exclude_none=True)
    return value


def changed_fields(existing: Content, incoming: CreateContentInput) -> list[str]:
    """Names of mutable fields whose values differ."""
    return [
        name
        for name in MUTABLE_FIELDS
        if _comparable(getattr(existing, name)) != _comparable(getattr(incoming, name))
    ]


class ContentService:
    """
    Stores normalized content with dedup and change detection.

    Usage:
        service = ContentService(ContentRepository(db))
        result = await service.store_multiple_content(items)
        assert result.total == len(items)
    """

    def __init__(self, repository: ContentRepository):
        self._repo = repository

    async def store_content(self, item: CreateContentInput | dict) -> StoreOutcome:
        """
        Store one item.

        Raises:
            ContentError: VALIDATION_ERROR for invalid input, STORAGE_ERROR
                when the database rejects the write
        """
        item = self._validate(item)

        try:
            existing = await self._repo.find_by_dedup_key(
                item.creator_id, item.platform, item.platform_content_id
            )
            if existing is None:
                duplicates = await self._resolve_duplicates(item)
                content_id = await self._repo.insert(item, duplicates)
                if content_id is not None:
                    await self._group_duplicates(content_id, item, duplicates)
                    return StoreOutcome.CREATED
                # Lost an insert race; the winner's row is now visible.
                existing = await self._repo.find_by_dedup_key(
                    item.creator_id, item.platform, item.platform_content_id
                )
                if existing is None:
                    raise ContentError(
                        f"Insert conflict for {item.platform_content_id} but no row found",
                        ContentError.STORAGE_ERROR,
                    )

            changes = changed_fields(existing, item)
            if not changes:
                return StoreOutcome.SKIPPED

            await self._repo.update_mutable(existing.id, item)
            logger.debug(
                "Content updated",
                content_id=existing.id,
                platform=item.platform,
                fields=changes,
            )
            return StoreOutcome.UPDATED

        except _DB_ERRORS as e:
            raise ContentError(
                f"Failed to store content: {e}", ContentError.STORAGE_ERROR
            ) from e

    async def store_multiple_content(
        self, items: list[CreateContentInput | dict]
    ) -> BatchStoreResult:
        """
        Store a batch with per-item isolation.

        A failing item becomes an entry in `errors`; the remaining items
        are still processed.
        """
        result = BatchStoreResult()
        metrics = get_metrics()

        for item in items:
            platform = _platform_of(item)
            try:
                outcome = await self.store_content(item)
            except ContentError as e:
                result.errors.append(
                    StoreError(
                        platform_content_id=_field_of(item, "platform_content_id"),
                        url=_field_of(item, "url"),
                        message=e.message,
                        code=e.code,
                    )
                )
                metrics.record_store_outcome(platform, "error")
                logger.warning(
                    "Failed to store content item",
                    platform_content_id=_field_of(item, "platform_content_id"),
                    code=e.code,
                    error=e.message,
                )
                continue

            result.record(outcome)
            metrics.record_store_outcome(platform, outcome.value)

        logger.info(
            "Stored content batch",
            items=len(items),
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def check_duplicate(
        self,
        creator_id: str,
        platform: Platform | str,
        platform_content_id: str,
    ) -> bool:
        try:
            existing = await self._repo.find_by_dedup_key(
                creator_id, platform, platform_content_id
            )
        except _DB_ERRORS as e:
            raise ContentError(
                f"Failed to check duplicate: {e}", ContentError.STORAGE_ERROR
            ) from e
        return existing is not None

    async def get_content(self, content_id: str) -> Content:
        """
        Raises:
            ContentError: CONTENT_NOT_FOUND (404)
        """
        content = await self._repo.get_by_id(content_id)
        if content is None:
            raise ContentError("Content not found", ContentError.CONTENT_NOT_FOUND, 404)
        return content

    async def list_content(
        self,
        creator_id: str | None = None,
        platform: Platform | str | None = None,
        user_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Content], int]:
        if platform is not None:
            try:
                platform = Platform(platform)
            except ValueError:
                raise ContentError(
                    f"Invalid platform: {platform}", ContentError.INVALID_PLATFORM, 400
                ) from None
        return await self._repo.list_content(
            creator_id=creator_id,
            platform=platform,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )

    async def get_duplicate_group(self, group_id: str) -> list[Content]:
        """Rows of a duplicate group, primary first."""
        return await self._repo.find_by_duplicate_group(group_id)

    async def set_primary_content(self, group_id: str, content_id: str) -> None:
        """
        Make `content_id` the only primary row of its duplicate group.

        Raises:
            ContentError: CONTENT_NOT_FOUND when the row is not in the group
        """
        rows = await self._repo.find_by_duplicate_group(group_id)
        ids = [row.id for row in rows]
        if content_id not in ids:
            raise ContentError(
                "Content not found in duplicate group",
                ContentError.CONTENT_NOT_FOUND,
                404,
            )
        await self._repo.set_duplicate_group(ids, group_id, content_id)

    async def _resolve_duplicates(self, item: CreateContentInput) -> DuplicateResolution:
        content_hash = generate_content_hash(
            item.creator_id,
            item.platform,
            item.url,
            item.title,
            item.description,
            item.content_body,
        )
        text = dedup_text(item.platform, item.title, item.description, item.content_body)
        # Text-less items (image-only posts, untitled entries) would all collide.
        if not normalize_text(text):
            return DuplicateResolution(content_hash=content_hash)

        existing = await self._repo.find_by_content_hash(content_hash)
        if not existing and Platform(item.platform) in SOCIAL_PLATFORMS:
            since = datetime.now(timezone.utc) - timedelta(days=SIMILARITY_WINDOW_DAYS)
            existing = [
                row
                for row in await self._repo.find_recent_social(item.creator_id, since)
                if text_similarity(
                    text, dedup_text(row.platform, row.title, row.description, row.content_body)
                )
                >= SIMILARITY_THRESHOLD
            ]
        return resolve_duplicates(item, content_hash, existing)

    async def _group_duplicates(
        self, content_id: str, item: CreateContentInput, duplicates: DuplicateResolution
    ) -> None:
        if not duplicates.has_duplicates:
            return
        primary_id = content_id if duplicates.is_primary else duplicates.primary_id
        await self._repo.set_duplicate_group(
            list(duplicates.existing_ids), duplicates.duplicate_group_id, primary_id
        )
        logger.debug(
            "Content grouped with duplicates",
            content_id=content_id,
            platform=item.platform,
            group_id=duplicates.duplicate_group_id,
            duplicates=len(duplicates.existing_ids),
            primary=primary_id == content_id,
        )

    async def select_pending_summary_ids(
        self, creator_ids: list[str], limit: int
    ) -> list[str]:
        return await self._repo.select_pending_summary_ids(creator_ids, limit)

    @staticmethod
    def _validate(item: CreateContentInput | dict) -> CreateContentInput:
        if isinstance(item, CreateContentInput):
            return item
        try:
            return CreateContentInput.model_validate(item)
        except ValidationError as e:
            messages = ", ".join(err.get("msg", "") for err in e.errors())
            raise ContentError(
                f"Validation error: {messages}", ContentError.VALIDATION_ERROR, 400
            ) from e


def _field_of(item: CreateContentInput | dict, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _platform_of(item: CreateContentInput | dict) -> str:
    value = _field_of(item, "platform")
    if isinstance(value, Platform):
        return value.value
    return str(value) if value else "unknown"
