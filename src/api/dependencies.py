"""
Dependency injection for FastAPI endpoints.

Process-wide singletons (database pool, shared HTTP client, summary queue)
are created on first use and released by cleanup_dependencies() at
shutdown. Tests replace any of these via app.dependency_overrides.
"""

import structlog
from redis.exceptions import RedisError

from src.config.settings import get_settings
from src.content.repository import ContentRepository
from src.content.service import ContentService
from src.creators.repository import CreatorRepository
from src.ingestion.http_client import HTTPClient, RetryConfig
from src.ingestion.registry import build_default_registry
from src.services.refresh_service import RefreshService
from src.storage.database import Database
from src.summarization.queue import SummaryQueue

logger = structlog.get_logger(__name__)

_database: Database | None = None
_http_client: HTTPClient | None = None
_summary_queue: SummaryQueue | None = None


async def get_database() -> Database:
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()

    return _database


async def get_http_client() -> HTTPClient:
    """Shared HTTP client for all fetchers."""
    global _http_client

    if _http_client is None:
        settings = get_settings()
        _http_client = HTTPClient(
            RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=settings.http_timeout_seconds,
        )
        await _http_client.open()

    return _http_client


async def get_summary_queue() -> SummaryQueue | None:
    """
    Connected summary queue, or None when summaries are not configured
    or Redis is unreachable. Refreshes still run without it.
    """
    global _summary_queue

    if not get_settings().summaries_configured:
        return None

    if _summary_queue is None:
        queue = SummaryQueue()
        try:
            await queue.connect()
        except (RedisError, OSError) as e:
            logger.warning("Summary queue unavailable", error=str(e))
            return None
        _summary_queue = queue

    return _summary_queue


async def get_content_service() -> ContentService:
    return ContentService(ContentRepository(await get_database()))


async def get_creator_repository() -> CreatorRepository:
    return CreatorRepository(await get_database())


async def get_refresh_service() -> RefreshService:
    """RefreshService wired to the shared singletons."""
    settings = get_settings()
    database = await get_database()
    return RefreshService(
        creators=CreatorRepository(database),
        content=ContentService(ContentRepository(database)),
        registry=build_default_registry(settings, await get_http_client()),
        summary_queue=await get_summary_queue(),
        settings=settings,
    )


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _http_client, _summary_queue

    if _summary_queue is not None:
        await _summary_queue.close()
        _summary_queue = None

    if _http_client is not None:
        await _http_client.close()
        _http_client = None

    if _database is not None:
        await _database.close()
        _database = None
