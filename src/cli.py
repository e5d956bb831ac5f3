"""
Command-line interface for content-tracker.

Provides commands to refresh creators, run the summary worker and API,
initialize the database, and run diagnostic checks.

Usage:
    content-tracker init-db            # Create tables
    content-tracker refresh            # Refresh every creator
    content-tracker refresh-linkedin   # Batched LinkedIn run
    content-tracker summary-worker     # Consume summary jobs
    content-tracker serve              # Start the API server
    content-tracker health             # Check service health
"""

import asyncio
import json
import signal
import sys

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Content Tracker - Multi-platform creator content ingestion."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


async def _open_refresh_service(db, http, with_summaries: bool):
    """Wire a RefreshService to an open database and HTTP client."""
    from src.content.repository import ContentRepository
    from src.content.service import ContentService
    from src.creators.repository import CreatorRepository
    from src.ingestion.registry import build_default_registry
    from src.services.refresh_service import RefreshService
    from src.summarization.queue import SummaryQueue

    settings = get_settings()
    queue = None
    if with_summaries and settings.summaries_configured:
        queue = SummaryQueue()
        await queue.connect()

    service = RefreshService(
        creators=CreatorRepository(db),
        content=ContentService(ContentRepository(db)),
        registry=build_default_registry(settings, http),
        summary_queue=queue,
        settings=settings,
    )
    return service, queue


def _echo_result(result) -> None:
    payload = result.to_dict()
    color = "green" if payload["success"] else "red"
    click.echo(click.style(payload["message"], fg=color))
    for creator in payload["stats"]["creators"]:
        click.echo(f"  {creator['name']} ({creator['id']})")
        for url in creator["urls"]:
            line = f"    [{url['status']}] {url['platform']} {url['url']}"
            if url.get("new") is not None:
                line += f" new={url['new']} updated={url.get('updated', 0)}"
            if url.get("error"):
                line += f" error={url['error']}"
            click.echo(line)
    if payload["stats"].get("summaryGenerationError"):
        click.echo(
            click.style(
                f"  Summary jobs not queued: {payload['stats']['summaryGenerationError']}",
                fg="yellow",
            )
        )


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.content.repository import ContentRepository
    from src.creators.repository import CreatorRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            await CreatorRepository(db).create_table()
            await ContentRepository(db).create_table()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option(
    "--platform",
    "platforms",
    multiple=True,
    type=click.Choice(["rss", "youtube", "twitter", "threads", "linkedin"]),
    help="Only refresh URLs on this platform (repeatable)",
)
@click.option("--user-id", default=None, help="Only creators owned by this user")
@click.option("--creator-id", "creator_ids", multiple=True, help="Only these creators")
@click.option("--cron", is_flag=True, help="Use cron windows instead of manual ones")
@click.option("--summaries/--no-summaries", default=True, help="Queue summary jobs")
@click.option("--json", "as_json", is_flag=True, help="Print the raw run result")
def refresh(
    platforms: tuple[str, ...],
    user_id: str | None,
    creator_ids: tuple[str, ...],
    cron: bool,
    summaries: bool,
    as_json: bool,
) -> None:
    """Refresh creators once and print per-URL results.

    Example:
        content-tracker refresh --platform youtube --platform rss
        content-tracker refresh --creator-id 42 --json
    """
    from src.ingestion.http_client import HTTPClient, RetryConfig
    from src.services.schemas import RefreshFailedError, RefreshTrigger
    from src.storage.database import Database

    async def run() -> int:
        settings = get_settings()
        db = Database()
        await db.connect()
        http = HTTPClient(
            RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=settings.http_timeout_seconds,
        )
        await http.open()
        queue = None

        try:
            service, queue = await _open_refresh_service(db, http, summaries)
            try:
                result = await service.run(
                    trigger=RefreshTrigger.CRON if cron else RefreshTrigger.MANUAL,
                    user_id=user_id,
                    creator_ids=list(creator_ids) or None,
                    platforms=list(platforms) or None,
                )
            except RefreshFailedError as e:
                click.echo(click.style(f"{e.message}: {e.details}", fg="red"))
                return 1

            if as_json:
                click.echo(json.dumps(result.to_dict(), indent=2))
            else:
                _echo_result(result)
            return 0
        finally:
            if queue is not None:
                await queue.close()
            await http.close()
            await db.close()

    exit_code = asyncio.run(run())
    if exit_code != 0:
        sys.exit(exit_code)


@main.command("refresh-linkedin")
@click.option("--json", "as_json", is_flag=True, help="Print the raw run result")
def refresh_linkedin(as_json: bool) -> None:
    """Run the batched LinkedIn refresh for every creator with a LinkedIn URL."""
    from src.ingestion.http_client import HTTPClient
    from src.services.schemas import RefreshFailedError
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()
        http = HTTPClient(timeout=get_settings().http_timeout_seconds)
        await http.open()

        try:
            service, _ = await _open_refresh_service(db, http, with_summaries=False)
            try:
                result = await service.refresh_linkedin()
            except RefreshFailedError as e:
                click.echo(click.style(f"{e.message}: {e.details}", fg="red"))
                return 1

            payload = result.to_dict()
            if as_json:
                click.echo(json.dumps(payload, indent=2))
            else:
                stats = payload["stats"].get("linkedin") or {}
                click.echo(payload["message"])
                click.echo(
                    f"  processed={stats.get('processed', 0)} "
                    f"skipped={stats.get('skipped', 0)} failed={stats.get('failed', 0)}"
                )
            return 0
        finally:
            await http.close()
            await db.close()

    exit_code = asyncio.run(run())
    if exit_code != 0:
        sys.exit(exit_code)


@main.command("summary-worker")
@click.option("--batch-size", default=None, type=int, help="Jobs to read per batch")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=8002, help="Metrics server port")
def summary_worker(batch_size: int | None, metrics: bool, metrics_port: int) -> None:
    """Run the summary worker.

    Consumes content id batches from the Redis Streams summary queue,
    calls the summarizer, and stores the summaries.

    Example:
        content-tracker summary-worker
        content-tracker summary-worker --batch-size 10
    """
    from src.summarization.config import SummaryConfig
    from src.summarization.worker import SummaryWorker

    async def run():
        config = SummaryConfig()
        if batch_size:
            config = config.model_copy(update={"worker_batch_size": batch_size})
        worker = SummaryWorker(config=config)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        # Handle shutdown signals
        loop = asyncio.get_event_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.stop()))

        await worker.start()

    asyncio.run(run())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the content tracker API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.argument("url")
def detect(url: str) -> None:
    """Detect which platform a URL belongs to."""
    from src.ingestion.platform_detector import PlatformDetectionError
    from src.ingestion.platform_detector import detect as detect_platform

    try:
        info = detect_platform(url)
    except PlatformDetectionError as e:
        click.echo(click.style(f"{e.code}: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"platform:         {info.platform.value}")
    click.echo(f"platform_user_id: {info.platform_user_id}")
    click.echo(f"profile_url:      {info.profile_url}")
    for key, value in info.metadata.items():
        click.echo(f"  {key}: {value}")


@main.command("add-creator")
@click.argument("name")
@click.argument("urls", nargs=-1, required=True)
@click.option("--user-id", default=None, help="Owning user (omit for system-wide)")
@click.option(
    "--platform",
    default=None,
    type=click.Choice(["rss", "youtube", "twitter", "threads", "linkedin"]),
    help="Declare this platform for every URL instead of detecting it",
)
@click.option("--force", is_flag=True, help="Keep declared platforms that disagree with the URL")
def add_creator(
    name: str,
    urls: tuple[str, ...],
    user_id: str | None,
    platform: str | None,
    force: bool,
) -> None:
    """Create a creator and attach its source URLs.

    Example:
        content-tracker add-creator "Jane Doe" https://youtube.com/@jane https://x.com/jane
    """
    from src.creators.repository import CreatorRepository
    from src.ingestion.platform_detector import (
        PlatformDetectionError,
        check_platform_mismatch,
    )
    from src.ingestion.platform_detector import detect as detect_platform
    from src.storage.database import Database

    resolved: list[tuple[str, str]] = []
    for url in urls:
        if platform:
            warning = check_platform_mismatch(platform, url)
            if warning and not force:
                click.echo(click.style(f"{warning} (use --force to keep it)", fg="red"))
                sys.exit(1)
            if warning:
                click.echo(click.style(f"Warning: {warning}", fg="yellow"))
            resolved.append((platform, url))
            continue
        try:
            resolved.append((detect_platform(url).platform.value, url))
        except PlatformDetectionError as e:
            click.echo(click.style(f"{url}: {e}", fg="red"))
            sys.exit(1)

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = CreatorRepository(db)
            creator = await repo.add_creator(name, user_id=user_id)
            for declared, url in resolved:
                await repo.add_url(creator.id, declared, url)
            click.echo(f"Created creator {creator.id} ({name}) with {len(resolved)} URL(s)")
            for declared, url in resolved:
                click.echo(f"  {declared}: {url}")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import asyncpg
    import structlog
    from redis.exceptions import RedisError

    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check Redis
        from src.summarization.queue import SummaryQueue
        queue = SummaryQueue()
        try:
            await queue.connect()
            results["redis"] = await queue.health_check()
        except (RedisError, OSError) as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))
        finally:
            await queue.close()

        # Check PostgreSQL
        from src.storage.database import Database
        db = Database()
        try:
            await db.connect()
            results["postgres"] = await db.health_check()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))
        finally:
            await db.close()

        # Check fetcher credentials
        settings = get_settings()
        results["youtube_configured"] = settings.youtube_configured
        results["apify_configured"] = settings.apify_configured
        results["brightdata_configured"] = settings.brightdata_configured
        results["summaries_configured"] = settings.summaries_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
