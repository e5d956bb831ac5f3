"""
Redis Streams queue for summary jobs.

A refresh run publishes the ids of freshly stored content in small
sub-batches; SummaryWorker consumes them. Each message carries the
publisher's traceparent so the worker span joins the run's trace.
"""

import json
import logging
import time
from dataclasses import dataclass, field

from src.config.settings import get_settings
from src.observability.tracing import TRACE_PARENT_FIELD, inject_trace_context
from src.queues import BaseRedisQueue, QueueConfig, StreamConfig
from src.summarization.config import SummaryConfig

logger = logging.getLogger(__name__)


@dataclass
class SummaryJob:
    """Summary job from the queue."""

    content_ids: list[str]
    message_id: str
    creator_id: str | None = None
    traceparent: str | None = None
    retry_count: int = 0
    fields: dict[str, str] = field(default_factory=dict)


def chunked(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class SummaryQueue(BaseRedisQueue[SummaryJob]):
    """
    Redis Streams wrapper for summary jobs.

    Usage:
        queue = SummaryQueue()
        await queue.connect()

        await queue.publish_batches(content_ids, creator_id="c1", batch_size=3)

        async for job in queue.consume():
            ...
            await queue.ack(job.message_id)
    """

    def __init__(self, config: SummaryConfig | None = None, redis_url: str | None = None):
        self._config = config or SummaryConfig()

        super().__init__(
            redis_url=redis_url or str(get_settings().redis_url),
            queue_config=QueueConfig(
                idle_timeout_ms=self._config.idle_timeout_ms,
                max_delivery_attempts=self._config.max_delivery_attempts,
            ),
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._config.stream_name,
            consumer_group=self._config.consumer_group,
            dlq_stream_name=self._config.dlq_stream_name,
            max_stream_length=self._config.max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "summary_worker"

    def _parse_job(self, message_id: str, fields: dict[str, str]) -> SummaryJob:
        content_ids = json.loads(fields["content_ids"])
        if not isinstance(content_ids, list) or not content_ids:
            raise ValueError("content_ids must be a non-empty list")
        return SummaryJob(
            content_ids=[str(cid) for cid in content_ids],
            message_id=message_id,
            creator_id=fields.get("creator_id") or None,
            traceparent=fields.get(TRACE_PARENT_FIELD),
            fields=dict(fields),
        )

    def _set_job_retry_count(self, job: SummaryJob, retry_count: int) -> None:
        job.retry_count = retry_count

    async def publish(self, content_ids: list[str], creator_id: str | None = None) -> str:
        """
        Publish one summary job.

        Returns:
            Message ID
        """
        fields = {
            "content_ids": json.dumps(list(content_ids)),
            "creator_id": creator_id or "",
            "queued_at": str(time.time()),
            **inject_trace_context(),
        }
        message_id = await self._add(fields)
        logger.debug(
            f"Published summary job {message_id} for {len(content_ids)} items "
            f"(creator={creator_id})"
        )
        return message_id

    async def publish_batches(
        self,
        content_ids: list[str],
        creator_id: str | None = None,
        batch_size: int = 3,
    ) -> list[str]:
        """Split content_ids into jobs of at most batch_size ids each."""
        message_ids = [
            await self.publish(batch, creator_id)
            for batch in chunked(list(content_ids), batch_size)
        ]
        if message_ids:
            logger.info(
                f"Published {len(message_ids)} summary jobs "
                f"({len(content_ids)} items, creator={creator_id})"
            )
        return message_ids
