"""Database repository for the creators and creator_urls tables."""

import json
import logging
from typing import Any

from src.creators.schemas import Creator, CreatorUrl, FetchState
from src.ingestion.schemas import Platform
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS creators (
    id           TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    display_name TEXT NOT NULL,
    avatar_url   TEXT,
    user_id      TEXT,
    metadata     JSONB NOT NULL DEFAULT '{}',
    fetch_state  JSONB NOT NULL DEFAULT '{"schema_version": 1, "version": 0}',
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_creators_user_id
    ON creators(user_id);

CREATE TABLE IF NOT EXISTS creator_urls (
    id         TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    creator_id TEXT NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
    platform   TEXT NOT NULL,
    url        TEXT NOT NULL,
    metadata   JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (creator_id, url)
);

CREATE INDEX IF NOT EXISTS idx_creator_urls_platform
    ON creator_urls(platform);
"""

_INSERT_CREATOR_SQL = """
INSERT INTO creators (display_name, avatar_url, user_id, metadata, fetch_state)
VALUES ($1, $2, $3, $4, $5)
RETURNING *
"""

_INSERT_URL_SQL = """
INSERT INTO creator_urls (creator_id, platform, url, metadata)
VALUES ($1, $2, $3, $4)
ON CONFLICT (creator_id, url) DO UPDATE SET
    platform = EXCLUDED.platform,
    metadata = EXCLUDED.metadata
RETURNING *
"""

# Compare-and-swap: only succeeds if nobody wrote since `expected` was read.
_UPDATE_FETCH_STATE_SQL = """
UPDATE creators
SET fetch_state = $2, updated_at = NOW()
WHERE id = $1
  AND COALESCE((fetch_state->>'version')::int, 0) = $3
"""


def _json_field(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _record_to_url(record) -> CreatorUrl:
    return CreatorUrl(
        id=record["id"],
        creator_id=record["creator_id"],
        platform=Platform(record["platform"]),
        url=record["url"],
        metadata=_json_field(record["metadata"]),
        created_at=record["created_at"],
    )


def _record_to_creator(record, urls: list[CreatorUrl] | None = None) -> Creator:
    metadata = _json_field(record["metadata"])
    return Creator(
        id=record["id"],
        display_name=record["display_name"],
        avatar_url=record["avatar_url"],
        user_id=record["user_id"],
        metadata=metadata,
        fetch_state=FetchState.from_db(_json_field(record["fetch_state"]), metadata),
        urls=urls or [],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class CreatorRepository:
    """CRUD and fetch-state operations for creators."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create creators and creator_urls (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Creators tables ensured")

    async def list_creators(
        self,
        user_id: str | None = None,
        creator_ids: list[str] | None = None,
        platform: Platform | str | None = None,
    ) -> list[Creator]:
        """
        Load creators with their URLs.

        Args:
            user_id: Only creators owned by this user (None = all creators)
            creator_ids: Restrict to these ids
            platform: Only creators with at least one URL on this platform
        """
        conditions: list[str] = []
        params: list = []
        idx = 1

        if user_id:
            conditions.append(f"c.user_id = ${idx}")
            params.append(user_id)
            idx += 1

        if creator_ids:
            conditions.append(f"c.id = ANY(${idx}::text[])")
            params.append(list(creator_ids))
            idx += 1

        if platform:
            conditions.append(
                f"EXISTS (SELECT 1 FROM creator_urls u "
                f"WHERE u.creator_id = c.id AND u.platform = ${idx})"
            )
            params.append(Platform(platform).value)
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions) if conditions else ""
        rows = await self._db.fetch(
            f"SELECT c.* FROM creators c{where_clause} ORDER BY c.display_name, c.id",
            *params,
        )
        if not rows:
            return []

        urls_by_creator = await self._load_urls([r["id"] for r in rows])
        return [_record_to_creator(r, urls_by_creator.get(r["id"], [])) for r in rows]

    async def _load_urls(self, creator_ids: list[str]) -> dict[str, list[CreatorUrl]]:
        rows = await self._db.fetch(
            """
            SELECT * FROM creator_urls
            WHERE creator_id = ANY($1::text[])
            ORDER BY created_at, url
            """,
            creator_ids,
        )
        grouped: dict[str, list[CreatorUrl]] = {}
        for row in rows:
            url = _record_to_url(row)
            grouped.setdefault(url.creator_id, []).append(url)
        return grouped

    async def get_creator(self, creator_id: str) -> Creator | None:
        row = await self._db.fetchrow("SELECT * FROM creators WHERE id = $1", creator_id)
        if not row:
            return None
        urls = await self._load_urls([creator_id])
        return _record_to_creator(row, urls.get(creator_id, []))

    async def add_creator(
        self,
        display_name: str,
        user_id: str | None = None,
        avatar_url: str | None = None,
        metadata: dict | None = None,
    ) -> Creator:
        row = await self._db.fetchrow(
            _INSERT_CREATOR_SQL,
            display_name,
            avatar_url,
            user_id,
            json.dumps(metadata or {}),
            json.dumps(FetchState().to_db()),
        )
        logger.info(f"Created creator {row['id']} ({display_name})")
        return _record_to_creator(row)

    async def add_url(
        self,
        creator_id: str,
        platform: Platform | str,
        url: str,
        metadata: dict | None = None,
    ) -> CreatorUrl:
        """Attach a URL to a creator, updating platform/metadata if it exists."""
        row = await self._db.fetchrow(
            _INSERT_URL_SQL,
            creator_id,
            Platform(platform).value,
            url,
            json.dumps(metadata or {}),
        )
        return _record_to_url(row)

    async def get_fetch_state(self, creator_id: str) -> FetchState | None:
        row = await self._db.fetchrow(
            "SELECT fetch_state, metadata FROM creators WHERE id = $1", creator_id
        )
        if not row:
            return None
        return FetchState.from_db(
            _json_field(row["fetch_state"]), _json_field(row["metadata"])
        )

    async def update_fetch_state(
        self,
        creator_id: str,
        new_state: FetchState,
        expected_version: int,
    ) -> bool:
        """
        Atomically replace fetch state if it is still at expected_version.

        The stored state gets version expected_version + 1.

        Returns:
            True if written, False on a version conflict (or unknown creator)
        """
        state = new_state.model_copy(update={"version": expected_version + 1})
        result = await self._db.execute(
            _UPDATE_FETCH_STATE_SQL,
            creator_id,
            json.dumps(state.to_db()),
            expected_version,
        )
        written = result == "UPDATE 1"
        if not written:
            logger.debug(
                f"Fetch state CAS miss for creator {creator_id} at version {expected_version}"
            )
        return written

    async def set_avatar_if_missing(self, creator_id: str, avatar_url: str) -> bool:
        """Set avatar_url only when the creator has none. Returns True if set."""
        result = await self._db.execute(
            """
            UPDATE creators SET avatar_url = $2, updated_at = NOW()
            WHERE id = $1 AND (avatar_url IS NULL OR avatar_url = '')
            """,
            creator_id,
            avatar_url,
        )
        return result == "UPDATE 1"
