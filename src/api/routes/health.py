"""
Health check endpoint with infrastructure checks.
"""

import time

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from src.api.dependencies import get_database
from src.api.models import ComponentHealth, HealthResponse
from src.config.settings import get_settings
from src.ingestion.http_client import HTTPClient
from src.ingestion.registry import build_default_registry
from src.storage.database import Database
from src.summarization.config import SummaryConfig

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        details = None
    except Exception as e:
        healthy = False
        details = {"error": str(e)}
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
        details=details,
    )


async def _check_redis(redis_client: aioredis.Redis) -> tuple[ComponentHealth, int | None]:
    """Ping Redis and read the summary stream's pending count."""
    start = time.perf_counter()
    config = SummaryConfig()
    try:
        await redis_client.ping()
        pending: int | None = None
        try:
            info = await redis_client.xpending(config.stream_name, config.consumer_group)
            pending = info["pending"] if info else 0
        except RedisError:
            # Stream or group not created yet.
            pending = 0
        health = ComponentHealth(
            status="healthy",
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return health, pending
    except (RedisError, OSError) as e:
        return (
            ComponentHealth(
                status="unhealthy",
                latency_ms=round((time.perf_counter() - start) * 1000, 2),
                details={"error": str(e)},
            ),
            None,
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the database, Redis and which platforms are configured.",
)
async def health_check(db: Database = Depends(get_database)) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - degraded: Redis is down (refreshes work, summary hand-off does not)
    - healthy: all components operational
    """
    settings = get_settings()
    components: dict[str, ComponentHealth] = {"database": await _check_database(db)}

    redis_client = aioredis.from_url(
        str(settings.redis_url), encoding="utf-8", decode_responses=True
    )
    try:
        components["redis"], pending = await _check_redis(redis_client)
    finally:
        await redis_client.aclose()

    if components["database"].status == "unhealthy":
        overall = "unhealthy"
    elif components["redis"].status == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    registry = build_default_registry(settings, HTTPClient())
    return HealthResponse(
        status=overall,
        components=components,
        configured_platforms=[p.value for p in registry.configured_platforms()],
        summary_queue_pending=pending,
    )
