"""Tests for SummaryWorker job processing."""

from unittest.mock import AsyncMock

import pytest

from src.ingestion.schemas import SummaryStatus
from src.summarization.config import SummaryConfig
from src.summarization.queue import SummaryJob
from src.summarization.summarizer import SummarizerError, SummaryResult
from src.summarization.worker import SummaryWorker


@pytest.fixture
def summarizer() -> AsyncMock:
    fake = AsyncMock()
    fake.summarize = AsyncMock(return_value=[])
    return fake


@pytest.fixture
def worker(summarizer) -> SummaryWorker:
    w = SummaryWorker(
        queue=AsyncMock(),
        database=AsyncMock(),
        summarizer=summarizer,
        config=SummaryConfig(),
    )
    w._repository = AsyncMock()
    return w


@pytest.fixture
def job() -> SummaryJob:
    return SummaryJob(content_ids=["a", "b", "c"], message_id="1-0", creator_id="creator-1")


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_summaries_saved_and_acked(self, worker, summarizer, job):
        summarizer.summarize.return_value = [
            SummaryResult("a", short="s", long="l", model="gpt-4o-mini"),
            SummaryResult("b", short="s2", long="l2", model="gpt-4o-mini"),
            SummaryResult("c", short="s3", model="gpt-4o-mini"),
        ]

        assert await worker.process_job(job) is True

        repo = worker._repository
        repo.set_summary_status.assert_any_await(["a", "b", "c"], SummaryStatus.PROCESSING)
        assert repo.save_summary.await_count == 3
        repo.save_summary.assert_any_await("a", "s", "l", "gpt-4o-mini")
        worker._queue.ack.assert_awaited_once_with("1-0")
        worker._queue.nack.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_and_failed_items_marked_error(self, worker, summarizer, job):
        summarizer.summarize.return_value = [
            SummaryResult("a", short="s", long="l", model="m"),
            SummaryResult("b", error="content too short"),
        ]

        assert await worker.process_job(job) is True

        repo = worker._repository
        repo.set_summary_status.assert_any_await(["b"], SummaryStatus.ERROR, "content too short")
        repo.set_summary_status.assert_any_await(["c"], SummaryStatus.ERROR, "No summary returned")
        worker._queue.ack.assert_awaited_once_with("1-0")

    @pytest.mark.asyncio
    async def test_summarizer_failure_nacks(self, worker, summarizer, job):
        summarizer.summarize.side_effect = SummarizerError("upstream 503")

        assert await worker.process_job(job) is False

        worker._repository.set_summary_status.assert_any_await(
            ["a", "b", "c"], SummaryStatus.ERROR, "upstream 503"
        )
        worker._queue.nack.assert_awaited_once_with("1-0", error="upstream 503")
        worker._queue.ack.assert_not_called()
        worker._repository.save_summary.assert_not_called()

    @pytest.mark.asyncio
    async def test_results_for_other_ids_ignored(self, worker, summarizer):
        summarizer.summarize.return_value = [SummaryResult("zzz", short="s", model="m")]
        job = SummaryJob(content_ids=["a"], message_id="2-0")

        await worker.process_job(job)

        worker._repository.save_summary.assert_not_called()
