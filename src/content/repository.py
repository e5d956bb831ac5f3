"""Database repository for the content table."""

import json
import logging
from datetime import datetime
from typing import Any

from src.content.deduplication import SOCIAL_PLATFORMS, DuplicateResolution
from src.ingestion.schemas import (
    Content,
    CreateContentInput,
    Platform,
    SummaryStatus,
)
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS content (
    id                    TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    creator_id            TEXT NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
    platform              TEXT NOT NULL,
    platform_content_id   VARCHAR(255) NOT NULL,
    url                   VARCHAR(255) NOT NULL,
    title                 VARCHAR(255),
    description           TEXT,
    thumbnail_url         TEXT,
    published_at          TIMESTAMPTZ,
    content_body          TEXT,
    word_count            INTEGER,
    reading_time_minutes  INTEGER,
    media_urls            JSONB NOT NULL DEFAULT '[]',
    engagement_metrics    JSONB NOT NULL DEFAULT '{}',
    reference_type        TEXT,
    referenced_content_id TEXT,
    referenced_content    JSONB,
    processing_status     TEXT NOT NULL DEFAULT 'pending',
    content_hash          TEXT,
    duplicate_group_id    TEXT,
    is_primary            BOOLEAN NOT NULL DEFAULT TRUE,
    ai_summary_short      TEXT,
    ai_summary_long       TEXT,
    summary_status        TEXT NOT NULL DEFAULT 'pending',
    summary_model         TEXT,
    summary_generated_at  TIMESTAMPTZ,
    summary_error_message TEXT,
    created_at            TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at            TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT content_dedup_key UNIQUE (creator_id, platform, platform_content_id)
);

CREATE INDEX IF NOT EXISTS idx_content_creator_published
    ON content(creator_id, published_at DESC);
CREATE INDEX IF NOT EXISTS idx_content_platform
    ON content(platform);
CREATE INDEX IF NOT EXISTS idx_content_summary_pending
    ON content(creator_id, created_at DESC) WHERE summary_status = 'pending';
CREATE INDEX IF NOT EXISTS idx_content_hash
    ON content(content_hash);
CREATE INDEX IF NOT EXISTS idx_content_duplicate_group
    ON content(duplicate_group_id) WHERE duplicate_group_id IS NOT NULL;
"""

# DO NOTHING: a concurrent writer that won the race yields no row.
_INSERT_SQL = """
INSERT INTO content (
    creator_id, platform, platform_content_id, url, title, description,
    thumbnail_url, published_at, content_body, word_count, reading_time_minutes,
    media_urls, engagement_metrics, reference_type, referenced_content_id,
    referenced_content, processing_status, content_hash, duplicate_group_id,
    is_primary
)
VALUES (
    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17,
    $18, $19, $20
)
ON CONFLICT (creator_id, platform, platform_content_id) DO NOTHING
RETURNING id
"""

# Identity columns are deliberately absent.
_UPDATE_MUTABLE_SQL = """
UPDATE content SET
    title = $2,
    description = $3,
    thumbnail_url = $4,
    content_body = $5,
    word_count = $6,
    reading_time_minutes = $7,
    media_urls = $8,
    engagement_metrics = $9,
    updated_at = NOW()
WHERE id = $1
"""

_JSON_COLUMNS = ("media_urls", "engagement_metrics", "referenced_content")


def _json_field(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _record_to_content(record) -> Content:
    data = dict(record)
    for column in _JSON_COLUMNS:
        data[column] = _json_field(data.get(column))
    data["media_urls"] = data["media_urls"] or []
    data["engagement_metrics"] = data["engagement_metrics"] or {}
    return Content.model_validate(data)


def _dump(model: Any) -> str | None:
    if model is None:
        return None
    if isinstance(model, list):
        return json.dumps([m.model_dump(mode="json", exclude_none=True) for m in model])
    return json.dumps(model.model_dump(mode="json", exclude_none=True))


class ContentRepository:
    """Persistence for normalized content records."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the content table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Content table ensured")

    async def find_by_dedup_key(
        self,
        creator_id: str,
        platform: Platform | str,
        platform_content_id: str,
    ) -> Content | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM content
            WHERE creator_id = $1 AND platform = $2 AND platform_content_id = $3
            """,
            creator_id,
            Platform(platform).value,
            platform_content_id,
        )
        return _record_to_content(row) if row else None

    async def insert(
        self, item: CreateContentInput, duplicates: DuplicateResolution | None = None
    ) -> str | None:
        """
        Insert a new record with its duplicate-group placement.

        Returns:
            The new id, or None if a row with the same dedup key already exists
        """
        return await self._db.fetchval(
            _INSERT_SQL,
            item.creator_id,
            Platform(item.platform).value,
            item.platform_content_id,
            item.url,
            item.title,
            item.description,
            item.thumbnail_url,
            item.published_at,
            item.content_body,
            item.word_count,
            item.reading_time_minutes,
            _dump(item.media_urls),
            _dump(item.engagement_metrics),
            item.reference_type,
            item.referenced_content_id,
            _dump(item.referenced_content),
            item.processing_status,
            duplicates.content_hash if duplicates else None,
            duplicates.duplicate_group_id if duplicates else None,
            duplicates.is_primary if duplicates else True,
        )

    async def find_by_content_hash(self, content_hash: str) -> list[Content]:
        rows = await self._db.fetch(
            """
            SELECT * FROM content
            WHERE content_hash = $1
            ORDER BY created_at
            """,
            content_hash,
        )
        return [_record_to_content(r) for r in rows]

    async def find_recent_social(
        self, creator_id: str, since: datetime
    ) -> list[Content]:
        """A creator's hashed social posts published since `since`."""
        rows = await self._db.fetch(
            """
            SELECT * FROM content
            WHERE creator_id = $1
              AND platform = ANY($2::text[])
              AND published_at >= $3
              AND content_hash IS NOT NULL
            ORDER BY published_at DESC
            """,
            creator_id,
            sorted(p.value for p in SOCIAL_PLATFORMS),
            since,
        )
        return [_record_to_content(r) for r in rows]

    async def find_by_duplicate_group(self, group_id: str) -> list[Content]:
        rows = await self._db.fetch(
            """
            SELECT * FROM content
            WHERE duplicate_group_id = $1
            ORDER BY is_primary DESC, published_at DESC NULLS LAST
            """,
            group_id,
        )
        return [_record_to_content(r) for r in rows]

    async def set_duplicate_group(
        self, content_ids: list[str], group_id: str, primary_id: str
    ) -> int:
        """
        Put rows into a duplicate group with exactly `primary_id` primary.

        Returns:
            Number of rows updated
        """
        if not content_ids:
            return 0
        result = await self._db.execute(
            """
            UPDATE content
            SET duplicate_group_id = $2, is_primary = (id = $3), updated_at = NOW()
            WHERE id = ANY($1::text[])
            """,
            list(content_ids),
            group_id,
            primary_id,
        )
        return int(result.split()[-1]) if result else 0

    async def update_mutable(self, content_id: str, item: CreateContentInput) -> bool:
        """Overwrite the mutable columns of an existing record and bump updated_at."""
        result = await self._db.execute(
            _UPDATE_MUTABLE_SQL,
            content_id,
            item.title,
            item.description,
            item.thumbnail_url,
            item.content_body,
            item.word_count,
            item.reading_time_minutes,
            _dump(item.media_urls),
            _dump(item.engagement_metrics),
        )
        return result == "UPDATE 1"

    async def get_by_id(self, content_id: str) -> Content | None:
        row = await self._db.fetchrow("SELECT * FROM content WHERE id = $1", content_id)
        return _record_to_content(row) if row else None

    async def list_content(
        self,
        creator_id: str | None = None,
        platform: Platform | str | None = None,
        user_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Content], int]:
        """Paginated list, newest first. Returns (items, total)."""
        conditions: list[str] = []
        params: list = []
        idx = 1

        if creator_id:
            conditions.append(f"c.creator_id = ${idx}")
            params.append(creator_id)
            idx += 1

        if platform:
            conditions.append(f"c.platform = ${idx}")
            params.append(Platform(platform).value)
            idx += 1

        if user_id:
            conditions.append(
                f"c.creator_id IN (SELECT id FROM creators WHERE user_id = ${idx})"
            )
            params.append(user_id)
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions) if conditions else ""

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM content c{where_clause}", *params
        )

        params.extend([limit, offset])
        rows = await self._db.fetch(
            f"""
            SELECT c.* FROM content c{where_clause}
            ORDER BY c.published_at DESC NULLS LAST, c.created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *params,
        )
        return [_record_to_content(r) for r in rows], total or 0

    async def select_pending_summary_ids(
        self, creator_ids: list[str], limit: int
    ) -> list[str]:
        """Newest content ids still awaiting a summary for the given creators."""
        if not creator_ids or limit <= 0:
            return []
        rows = await self._db.fetch(
            """
            SELECT id FROM content
            WHERE creator_id = ANY($1::text[]) AND summary_status = 'pending'
            ORDER BY created_at DESC
            LIMIT $2
            """,
            list(creator_ids),
            limit,
        )
        return [r["id"] for r in rows]

    async def set_summary_status(
        self,
        content_ids: list[str],
        status: SummaryStatus | str,
        error_message: str | None = None,
    ) -> int:
        """Set summary_status on many rows. Returns the number updated."""
        if not content_ids:
            return 0
        result = await self._db.execute(
            """
            UPDATE content
            SET summary_status = $2, summary_error_message = $3, updated_at = NOW()
            WHERE id = ANY($1::text[])
            """,
            list(content_ids),
            SummaryStatus(status).value,
            error_message,
        )
        return int(result.split()[-1]) if result else 0

    async def save_summary(
        self,
        content_id: str,
        short: str | None,
        long: str | None,
        model: str | None,
    ) -> bool:
        result = await self._db.execute(
            """
            UPDATE content SET
                ai_summary_short = $2,
                ai_summary_long = $3,
                summary_model = $4,
                summary_status = 'completed',
                summary_generated_at = NOW(),
                summary_error_message = NULL,
                updated_at = NOW()
            WHERE id = $1
            """,
            content_id,
            short,
            long,
            model,
        )
        return result == "UPDATE 1"
