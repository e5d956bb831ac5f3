"""
Refresh service - pulls new content for tracked creators.

For every creator URL it resolves a fetcher through the registry, builds
the platform's incremental window from the creator's FetchState, fetches,
normalizes and stores. After a creator's URLs are done its FetchState is
written back with a compare-and-swap on the state version.

Features:
- Per-URL isolation: one failing URL never stops its siblings
- Credential gating: unconfigured platforms fail fast without network calls
- Batched concurrent LinkedIn path for its own cron
- Summary jobs published for newly stored content
"""

import asyncio
import time
import weakref
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg
import structlog
from redis.exceptions import RedisError

from src.config.settings import Settings, get_settings
from src.content.service import ContentService
from src.creators.repository import CreatorRepository
from src.creators.schemas import (
    PLATFORM_FETCH_FIELDS,
    Creator,
    CreatorUrl,
    FetchState,
    FetchStateConflictError,
)
from src.ingestion.base_fetcher import FetcherNotConfiguredError, FetchOptions, FetchResult
from src.ingestion.config import IngestionConfig
from src.ingestion.normalizer import ContentNormalizer
from src.ingestion.platform_detector import check_platform_mismatch, try_detect
from src.ingestion.registry import FetcherRegistry
from src.ingestion.schemas import Platform
from src.observability.logging import bind_context, unbind_context
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced
from src.services.config import RefreshConfig
from src.services.schemas import (
    CreatorRefreshResult,
    LinkedInCreatorStats,
    LinkedInRunStats,
    RefreshFailedError,
    RefreshRunResult,
    RefreshTrigger,
    RunStats,
    UrlRefreshResult,
    UrlStatus,
)
from src.summarization.queue import SummaryQueue

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

EMPTY_MESSAGES: dict[Platform, str] = {
    Platform.RSS: "No items in feed",
    Platform.YOUTUBE: "No new videos",
    Platform.TWITTER: "No new tweets",
    Platform.THREADS: "No new posts",
    Platform.LINKEDIN: "No new posts",
}

# One lock per creator id, shared by every RefreshService in the process.
# Entries disappear once no refresh holds a reference to the lock.
_creator_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def creator_lock(creator_id: str) -> asyncio.Lock:
    lock = _creator_locks.get(creator_id)
    if lock is None:
        lock = _creator_locks[creator_id] = asyncio.Lock()
    return lock


def run_message(new: int, creators: int) -> str:
    return f"Fetched {new} new items from {creators} creators"


class RefreshService:
    """
    Orchestrates refresh runs across creators and platforms.

    Usage:
        async with HTTPClient() as http:
            service = RefreshService(
                creators=CreatorRepository(db),
                content=ContentService(ContentRepository(db)),
                registry=build_default_registry(settings, http),
            )
            result = await service.run(RefreshTrigger.MANUAL, user_id="u1")
    """

    def __init__(
        self,
        creators: CreatorRepository,
        content: ContentService,
        registry: FetcherRegistry,
        normalizer: ContentNormalizer | None = None,
        summary_queue: SummaryQueue | None = None,
        settings: Settings | None = None,
        config: RefreshConfig | None = None,
        ingestion_config: IngestionConfig | None = None,
    ):
        """
        Args:
            creators: Creator and fetch-state persistence
            content: Content store
            registry: Platform -> fetcher resolution
            normalizer: Raw item mapping (or a default ContentNormalizer)
            summary_queue: Connected queue for summary jobs; None disables
                the hand-off
            settings: Application settings (or the cached global)
            config: Refresh knobs (or loaded from REFRESH_ env)
            ingestion_config: Window caps (or loaded from INGESTION_ env)
        """
        self._creators = creators
        self._content = content
        self._registry = registry
        self._normalizer = normalizer or ContentNormalizer()
        self._summary_queue = summary_queue
        self._settings = settings or get_settings()
        self._config = config or RefreshConfig()
        self._ingestion = ingestion_config or IngestionConfig()
        self._metrics = get_metrics()

        self._windows: dict[
            Platform, Callable[[FetchState, RefreshTrigger, datetime], FetchOptions]
        ] = {
            Platform.RSS: self._rss_window,
            Platform.YOUTUBE: self._youtube_window,
            Platform.TWITTER: self._twitter_window,
            Platform.THREADS: self._threads_window,
            Platform.LINKEDIN: self._linkedin_window,
        }

    # Run modes

    async def run(
        self,
        trigger: RefreshTrigger = RefreshTrigger.MANUAL,
        user_id: str | None = None,
        creator_ids: list[str] | None = None,
        platforms: Iterable[Platform | str] | None = None,
    ) -> RefreshRunResult:
        """
        Load creators and refresh them.

        Raises:
            RefreshFailedError: Creators could not be listed
        """
        platform_set = {Platform(p) for p in platforms} if platforms else None
        only = next(iter(platform_set)) if platform_set and len(platform_set) == 1 else None

        creators = await self._list_creators(
            trigger, user_id=user_id, creator_ids=creator_ids, platform=only
        )
        return await self.refresh_creators(creators, trigger, platform_set)

    async def refresh_creators(
        self,
        creators: list[Creator],
        trigger: RefreshTrigger = RefreshTrigger.MANUAL,
        platforms: set[Platform] | None = None,
    ) -> RefreshRunResult:
        """Refresh creators one after another, their URLs in order."""
        start = time.perf_counter()
        stats = RunStats()

        with traced(
            tracer,
            "refresh.run",
            {"refresh.trigger": trigger.value, "refresh.creators": len(creators)},
        ):
            logger.info(
                "Refresh run started",
                trigger=trigger.value,
                creators=len(creators),
                platforms=sorted(p.value for p in platforms) if platforms else "all",
            )
            for creator in creators:
                result = await self.refresh_creator(creator, trigger, platforms)
                stats.creators.append(result)
                for url_result in result.urls:
                    stats.add_url(url_result)

            await self._queue_summaries(stats)

        return self._finish(stats, trigger, len(creators), start)

    async def refresh_linkedin(
        self, creators: list[Creator] | None = None
    ) -> RefreshRunResult:
        """
        Batched LinkedIn refresh for the dedicated cron.

        Creators run concurrently in batches of linkedin_batch_size with
        linkedin_batch_delay_seconds between batches.

        Raises:
            RefreshFailedError: Creators could not be listed
        """
        if creators is None:
            creators = await self._list_creators(
                RefreshTrigger.LINKEDIN_CRON, platform=Platform.LINKEDIN
            )

        start = time.perf_counter()
        trigger = RefreshTrigger.LINKEDIN_CRON
        stats = RunStats(linkedin=LinkedInRunStats())
        size = self._config.linkedin_batch_size
        batches = [creators[i : i + size] for i in range(0, len(creators), size)]

        with traced(
            tracer,
            "refresh.linkedin",
            {"refresh.creators": len(creators), "refresh.batches": len(batches)},
        ):
            logger.info("LinkedIn refresh started", creators=len(creators), batches=len(batches))
            for index, batch in enumerate(batches):
                if index > 0:
                    await asyncio.sleep(self._config.linkedin_batch_delay_seconds)
                results = await asyncio.gather(
                    *(self._refresh_linkedin_creator(creator) for creator in batch)
                )
                for creator_result, line in results:
                    stats.creators.append(creator_result)
                    for url_result in creator_result.urls:
                        stats.add_url(url_result)
                    self._tally_linkedin(stats.linkedin, line)

            stats.linkedin.duration_ms = int((time.perf_counter() - start) * 1000)
            await self._queue_summaries(stats)

        logger.info(
            "LinkedIn refresh finished",
            processed=stats.linkedin.processed,
            skipped=stats.linkedin.skipped,
            failed=stats.linkedin.failed,
            duration_ms=stats.linkedin.duration_ms,
        )
        return self._finish(stats, trigger, len(creators), start)

    # Creators

    async def refresh_creator(
        self,
        creator: Creator,
        trigger: RefreshTrigger = RefreshTrigger.MANUAL,
        platforms: set[Platform] | None = None,
    ) -> CreatorRefreshResult:
        """Refresh every URL of one creator, then write back its FetchState."""
        bind_context(creator_id=creator.id)
        try:
            state = creator.fetch_state
            now = datetime.now(timezone.utc)
            result = CreatorRefreshResult(id=creator.id, name=creator.display_name)

            for creator_url in creator.urls_for(platforms):
                url_result = await self._refresh_url(creator, creator_url, state, trigger, now)
                result.urls.append(url_result)

            if result.urls:
                await self._write_back(creator, state, result, trigger, now)
            return result
        finally:
            unbind_context("creator_id")

    async def _refresh_linkedin_creator(
        self, creator: Creator
    ) -> tuple[CreatorRefreshResult, LinkedInCreatorStats]:
        start = time.perf_counter()
        linkedin_urls = creator.urls_for({Platform.LINKEDIN})
        if not linkedin_urls:
            return (
                CreatorRefreshResult(id=creator.id, name=creator.display_name),
                LinkedInCreatorStats(creator.id, creator.display_name, None, "skipped"),
            )

        result = await self.refresh_creator(
            creator, RefreshTrigger.LINKEDIN_CRON, {Platform.LINKEDIN}
        )
        statuses = {u.status for u in result.urls}
        if UrlStatus.ERROR in statuses:
            status = UrlStatus.ERROR
        elif UrlStatus.SUCCESS in statuses:
            status = UrlStatus.SUCCESS
        else:
            status = UrlStatus.EMPTY
        failed = [u for u in result.urls if u.error]
        if len(result.urls) > 1:
            errors = [f"{u.url}: {u.error}" for u in failed]
        else:
            errors = [u.error for u in failed]
        line = LinkedInCreatorStats(
            id=creator.id,
            name=creator.display_name,
            url=", ".join(u.url for u in result.urls),
            status=status.value,
            fetched=sum(u.fetched or 0 for u in result.urls),
            new=sum(u.new or 0 for u in result.urls),
            updated=sum(u.updated or 0 for u in result.urls),
            duration_ms=int((time.perf_counter() - start) * 1000),
            error="; ".join(errors) or None,
        )
        return result, line

    @staticmethod
    def _tally_linkedin(run: LinkedInRunStats, line: LinkedInCreatorStats) -> None:
        run.creators.append(line)
        if line.status == "skipped":
            run.skipped += 1
        elif line.status == UrlStatus.ERROR.value:
            run.failed += 1
        else:
            run.processed += 1

    # URLs

    async def _refresh_url(
        self,
        creator: Creator,
        creator_url: CreatorUrl,
        state: FetchState,
        trigger: RefreshTrigger,
        now: datetime,
    ) -> UrlRefreshResult:
        platform = Platform(creator_url.platform)
        result = UrlRefreshResult(url=creator_url.url, platform=platform)
        log = logger.bind(platform=platform.value, url=creator_url.url)

        mismatch = check_platform_mismatch(platform, creator_url.url)
        if mismatch:
            log.warning("Platform mismatch", warning=mismatch)
            result.add_message(f"mismatch_warning: {mismatch}")

        try:
            fetcher = self._registry.get(platform)
        except FetcherNotConfiguredError as e:
            log.warning("Fetcher not configured", env_var=e.env_var)
            result.mark_error(str(e))
            return result

        options = self._windows[platform](state, trigger, now)
        result.status = UrlStatus.FETCHING

        try:
            fetched = await fetcher.fetch(creator_url.url, options)
            if not fetched.success:
                result.mark_error(fetched.error or "Fetch failed")
                return result

            result.fetched = len(fetched.items)
            if not fetched.items:
                result.status = UrlStatus.EMPTY
                result.add_message(EMPTY_MESSAGES.get(platform, "No new items"))
                return result

            await self._store(creator, creator_url, platform, fetched, result)
            await self._backfill_avatar(creator, creator_url, fetched)
            result.status = UrlStatus.SUCCESS
        except Exception as e:
            log.exception("URL refresh failed")
            result.mark_error(str(e) or type(e).__name__)

        return result

    async def _store(
        self,
        creator: Creator,
        creator_url: CreatorUrl,
        platform: Platform,
        fetched: FetchResult,
        result: UrlRefreshResult,
    ) -> None:
        records, failures = self._normalizer.normalize_many(
            platform, fetched.items, creator.id, creator_url.url
        )
        if failures:
            self._metrics.record_normalization_error(platform, len(failures))
            logger.warning(
                "Items failed normalization",
                platform=platform.value,
                failed=len(failures),
                first_error=str(failures[0]),
            )

        batch = await self._content.store_multiple_content(records)
        result.new = batch.created
        result.updated = batch.updated
        result.errors = len(batch.errors) + len(failures)

    async def _backfill_avatar(
        self, creator: Creator, creator_url: CreatorUrl, fetched: FetchResult
    ) -> None:
        """Use an avatar the scraper saw when the creator has none."""
        authors: list[dict[str, Any]] = fetched.extras.get("extracted_authors") or []
        if creator.avatar_url or not authors:
            return

        info = try_detect(creator_url.url)
        handle = (info.platform_user_id if info else "").lower()
        author = next(
            (a for a in authors if str(a.get("username", "")).lower() == handle),
            authors[0],
        )
        try:
            if await self._creators.set_avatar_if_missing(creator.id, author["avatar_url"]):
                creator.avatar_url = author["avatar_url"]
                logger.info("Creator avatar back-filled", username=author.get("username"))
        except _DB_ERRORS as e:
            logger.warning("Avatar back-fill failed", error=str(e))

    # Windows

    def _rss_window(self, state: FetchState, trigger: RefreshTrigger, now: datetime) -> FetchOptions:
        if trigger == RefreshTrigger.MANUAL:
            return FetchOptions(max_results=self._ingestion.rss_manual_max_results)
        return FetchOptions(max_results=self._ingestion.rss_cron_max_results)

    def _youtube_window(
        self, state: FetchState, trigger: RefreshTrigger, now: datetime
    ) -> FetchOptions:
        if state.last_youtube_fetch is not None:
            return FetchOptions(
                max_results=self._ingestion.youtube_incremental_max_results,
                since=state.last_youtube_fetch,
            )
        return FetchOptions(
            max_results=self._ingestion.youtube_initial_max_results,
            since=now - timedelta(days=self._ingestion.youtube_initial_lookback_days),
        )

    def _twitter_window(
        self, state: FetchState, trigger: RefreshTrigger, now: datetime
    ) -> FetchOptions:
        return FetchOptions(
            max_results=self._ingestion.twitter_max_results,
            since=state.last_twitter_fetch or state.last_fetched_at,
        )

    def _threads_window(
        self, state: FetchState, trigger: RefreshTrigger, now: datetime
    ) -> FetchOptions:
        return FetchOptions(max_results=self._ingestion.threads_max_results)

    def _linkedin_window(
        self, state: FetchState, trigger: RefreshTrigger, now: datetime
    ) -> FetchOptions:
        return FetchOptions(
            max_results=self._ingestion.linkedin_max_results,
            since=state.last_linkedin_fetch,
        )

    # Fetch state

    async def _write_back(
        self,
        creator: Creator,
        state: FetchState,
        result: CreatorRefreshResult,
        trigger: RefreshTrigger,
        now: datetime,
    ) -> None:
        update: dict[str, Any] = {
            "last_fetched_at": now,
            "last_fetch_stats": {
                "trigger": trigger.value,
                "at": now.isoformat(),
                "new": sum(u.new or 0 for u in result.urls),
                "updated": sum(u.updated or 0 for u in result.urls),
                "errors": sum(
                    (u.errors or 0) + int(u.status == UrlStatus.ERROR) for u in result.urls
                ),
            },
        }
        for url_result in result.urls:
            if url_result.status not in (UrlStatus.SUCCESS, UrlStatus.EMPTY):
                continue
            update[PLATFORM_FETCH_FIELDS[url_result.platform]] = now
            if url_result.platform == Platform.LINKEDIN:
                update["last_linkedin_count"] = url_result.fetched or 0

        try:
            creator.fetch_state = await self.write_fetch_state(
                creator.id, state, FetchState(**update)
            )
        except FetchStateConflictError as e:
            logger.error("Fetch state not saved", error=str(e))
        except _DB_ERRORS as e:
            logger.error("Fetch state write failed", error=str(e))

    async def write_fetch_state(
        self, creator_id: str, base: FetchState, incoming: FetchState
    ) -> FetchState:
        """
        Merge `incoming` into the stored state with compare-and-swap.

        On a version conflict the stored state is re-read and merged again
        (newer timestamp wins per field), up to fetch_state_max_attempts.

        Raises:
            FetchStateConflictError: Every attempt lost the race
        """
        attempts = self._config.fetch_state_max_attempts
        async with creator_lock(creator_id):
            current = base
            for attempt in range(1, attempts + 1):
                desired = current.merged_with(incoming)
                if await self._creators.update_fetch_state(creator_id, desired, current.version):
                    return desired.model_copy(update={"version": current.version + 1})

                self._metrics.record_fetch_state_conflict()
                logger.info("Fetch state conflict, re-reading", attempt=attempt)
                latest = await self._creators.get_fetch_state(creator_id)
                if latest is None:
                    break
                current = latest

        raise FetchStateConflictError(creator_id, attempts)

    # Summaries

    async def _queue_summaries(self, stats: RunStats) -> None:
        """Publish summary jobs for new content; failures land in stats."""
        if stats.new <= 0 or self._summary_queue is None:
            return
        if not self._settings.summaries_configured:
            logger.debug("Summaries not configured, skipping hand-off")
            return

        remaining = min(stats.new, self._config.summary_selection_cap)
        published = 0
        try:
            for creator_result in stats.creators:
                if remaining <= 0:
                    break
                if creator_result.new <= 0:
                    continue
                ids = await self._content.select_pending_summary_ids(
                    [creator_result.id], min(creator_result.new, remaining)
                )
                remaining -= len(ids)
                published += len(
                    await self._summary_queue.publish_batches(
                        ids, creator_result.id, self._config.summary_sub_batch_size
                    )
                )
        except (RedisError, RuntimeError, *_DB_ERRORS) as e:
            logger.error("Summary hand-off failed", error=str(e))
            stats.summary_generation_error = str(e)
            return

        self._metrics.record_summary_jobs("published", published)
        logger.info("Summary jobs published", jobs=published)

    # Helpers

    async def _list_creators(self, trigger: RefreshTrigger, **filters: Any) -> list[Creator]:
        try:
            return await self._creators.list_creators(**filters)
        except _DB_ERRORS as e:
            logger.error("Failed to list creators", trigger=trigger.value, error=str(e))
            self._metrics.record_refresh_run(trigger.value, False, 0.0)
            raise RefreshFailedError("Failed to refresh content", str(e)) from e

    def _finish(
        self, stats: RunStats, trigger: RefreshTrigger, creators: int, start: float
    ) -> RefreshRunResult:
        duration = time.perf_counter() - start
        self._metrics.record_refresh_run(trigger.value, True, duration)
        result = RefreshRunResult(
            success=True, message=run_message(stats.new, creators), stats=stats
        )
        logger.info(
            "Refresh run finished",
            trigger=trigger.value,
            processed=stats.processed,
            new=stats.new,
            updated=stats.updated,
            errors=stats.errors,
            duration_seconds=round(duration, 2),
        )
        return result
