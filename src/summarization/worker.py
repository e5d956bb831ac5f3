"""
Summary worker - consumes summary jobs and stores the results.

Runs as a standalone service that:
1. Consumes content id batches from the summary queue
2. Marks the rows `processing`
3. Calls the Summarizer
4. Saves summaries (`completed`) or records the failure (`error`)

A job whose summarizer call fails is nacked to the DLQ.
"""

import asyncio

import structlog

from src.config.settings import get_settings
from src.content.repository import ContentRepository
from src.ingestion.http_client import HTTPClient, RetryConfig
from src.ingestion.schemas import SummaryStatus
from src.observability.metrics import get_metrics
from src.observability.tracing import extract_trace_context, get_tracer, traced
from src.storage.database import Database
from src.summarization.config import SummaryConfig
from src.summarization.queue import SummaryJob, SummaryQueue
from src.summarization.summarizer import RemoteSummarizer, Summarizer, SummaryResult

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


class SummaryWorker:
    """
    Worker that processes summary jobs from the queue.

    Usage:
        worker = SummaryWorker()
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: SummaryQueue | None = None,
        database: Database | None = None,
        summarizer: Summarizer | None = None,
        config: SummaryConfig | None = None,
    ):
        """
        Args:
            queue: Summary job queue (or create from config)
            database: Database connection (or create from settings)
            summarizer: Summary backend (or RemoteSummarizer from settings)
            config: Summary configuration
        """
        self._config = config or SummaryConfig()
        self._queue = queue or SummaryQueue(config=self._config)
        self._database = database or Database()
        self._summarizer = summarizer

        self._repository: ContentRepository | None = None
        self._http: HTTPClient | None = None
        self._running = False
        self._metrics = get_metrics()

        logger.info(
            "SummaryWorker initialized",
            stream=self._config.stream_name,
            batch_size=self._config.worker_batch_size,
        )

    async def start(self) -> None:
        """Run until stop() is called or the task is cancelled."""
        self._running = True
        logger.info("Starting summary worker")

        await self._queue.connect()
        await self._database.connect()
        self._repository = ContentRepository(self._database)

        if self._summarizer is None:
            self._summarizer = await self._create_remote_summarizer()

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info("Summary worker cancelled")
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        logger.info("Stopping summary worker")
        self._running = False

    async def _create_remote_summarizer(self) -> RemoteSummarizer:
        settings = get_settings()
        if not settings.summaries_configured:
            raise RuntimeError(
                "Summaries not configured. Please add OPENAI_API_KEY to environment variables."
            )
        self._http = HTTPClient(
            RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=self._config.request_timeout_seconds,
        )
        await self._http.open()
        return RemoteSummarizer(
            self._http,
            url=settings.summarizer_url,
            api_key=settings.openai_api_key,
            model=self._config.model,
        )

    async def _cleanup(self) -> None:
        await self._queue.close()
        await self._database.close()
        if self._http is not None:
            await self._http.close()
        logger.info("Summary worker cleaned up")

    async def _process_loop(self) -> None:
        async for job in self._queue.consume(
            count=self._config.worker_batch_size,
            block_ms=self._config.block_ms,
        ):
            if not self._running:
                break
            await self.process_job(job)
            self._metrics.set_summary_queue_depth(await self._queue.get_pending_count())

    async def process_job(self, job: SummaryJob) -> bool:
        """
        Summarize one job's content and ack or nack it.

        Returns:
            True if the summarizer call succeeded (individual items may
            still have failed and be marked `error`)
        """
        repo = self._require_repository()
        ids = job.content_ids
        log = logger.bind(
            message_id=job.message_id,
            creator_id=job.creator_id,
            items=len(ids),
            retry_count=job.retry_count,
        )

        with traced(
            tracer,
            "summary.process",
            {"summary.items": len(ids), "summary.retry_count": job.retry_count},
            parent_context=extract_trace_context(job.fields),
        ):
            await repo.set_summary_status(ids, SummaryStatus.PROCESSING)
            try:
                results = await self._summarizer.summarize(ids)
            except Exception as e:
                log.error("Summarizer failed", error=str(e))
                await repo.set_summary_status(ids, SummaryStatus.ERROR, str(e))
                await self._queue.nack(job.message_id, error=str(e))
                self._metrics.record_summary_jobs("failed")
                return False

            completed, failed = await self._store_results(ids, results)

        await self._queue.ack(job.message_id)
        self._metrics.record_summary_jobs("completed")
        log.info("Summary job processed", completed=completed, failed=failed)
        return True

    async def _store_results(
        self, ids: list[str], results: list[SummaryResult]
    ) -> tuple[int, int]:
        repo = self._require_repository()
        by_id = {r.content_id: r for r in results if r.content_id in ids}

        completed = 0
        errors: dict[str, list[str]] = {}
        for content_id in ids:
            result = by_id.get(content_id)
            if result is None:
                errors.setdefault("No summary returned", []).append(content_id)
                continue
            if not result.ok:
                errors.setdefault(result.error or "Empty summary", []).append(content_id)
                continue
            await repo.save_summary(content_id, result.short, result.long, result.model)
            completed += 1

        for message, failed_ids in errors.items():
            await repo.set_summary_status(failed_ids, SummaryStatus.ERROR, message)

        return completed, sum(len(v) for v in errors.values())

    def _require_repository(self) -> ContentRepository:
        if self._repository is None:
            self._repository = ContentRepository(self._database)
        return self._repository
