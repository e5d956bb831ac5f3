"""
Redis Streams queue base class.

Each concrete queue names its stream, consumer group and DLQ, and knows
how to turn message fields into a job. The base class handles:
- Connection lifecycle and consumer group creation
- Reclaiming idle pending messages with XAUTOCLAIM before reading new ones
- Dead-lettering messages that exceed max_delivery_attempts
- ack / nack, pending counts and health checks

Delivery is at-least-once: a worker that crashes between receiving and
acking a message leaves it pending, and another consumer reclaims it
once it has been idle for idle_timeout_ms.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DLQ_MAX_LENGTH = 10_000


@dataclass
class StreamConfig:
    """Names and trimming limit for one Redis stream."""

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 50_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Consumer-group queue over a Redis stream.

    Subclasses implement:
        - _parse_job(): message fields -> job of type T
        - _get_stream_config(): stream, group and DLQ names
        - _get_consumer_prefix(): prefix for the generated consumer name
        - _set_job_retry_count(): record previous delivery attempts on a job

    Usage:
        async with SummaryQueue() as queue:
            async for job in queue.consume():
                await handle(job)
                await queue.ack(job.message_id)
    """

    def __init__(self, redis_url: str, queue_config: QueueConfig | None = None):
        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()

        self._redis: redis.Redis | None = None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_job(self, message_id: str, fields: dict[str, str]) -> T:
        """Build a job from a stream message. Raise to dead-letter it."""
        ...

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig:
        ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str:
        ...

    @abstractmethod
    def _set_job_retry_count(self, job: T, retry_count: int) -> None:
        ...

    async def connect(self) -> None:
        """Open the connection and create the consumer group if needed."""
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        try:
            await self._redis.xgroup_create(
                name=self._stream_config.stream_name,
                groupname=self._stream_config.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group '{self._stream_config.consumer_group}' "
                f"on '{self._stream_config.stream_name}'"
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        logger.info(
            f"Queue connected: stream={self._stream_config.stream_name} "
            f"consumer={self._consumer_name}"
        )

    async def close(self) -> None:
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None
        logger.info(
            f"Queue closed: stream="
            f"{self._stream_config.stream_name if self._stream_config else 'unknown'}"
        )

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def stream_config(self) -> StreamConfig:
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    @property
    def consumer_name(self) -> str | None:
        return self._consumer_name

    async def _add(self, fields: dict[str, str]) -> str:
        """XADD to the stream with approximate trimming."""
        message_id = await self.redis.xadd(
            name=self.stream_config.stream_name,
            fields=fields,
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )
        return str(message_id)

    async def consume(self, count: int = 10, block_ms: int = 5000) -> AsyncIterator[T]:
        """
        Yield jobs until cancelled.

        Each iteration first reclaims idle pending messages, then reads new
        ones with XREADGROUP. Redis errors back off exponentially and the
        loop continues.
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while True:
            try:
                async for job in self._reclaim_pending(count):
                    yield job

                response = await self.redis.xreadgroup(
                    groupname=self.stream_config.consumer_group,
                    consumername=self._consumer_name,
                    streams={self.stream_config.stream_name: ">"},
                    count=count,
                    block=block_ms,
                )
                backoff.reset()

                for _stream, entries in response or []:
                    for message_id, fields in entries:
                        job = await self._parse_or_dead_letter(message_id, fields)
                        if job is not None:
                            self._set_job_retry_count(job, 0)
                            yield job

            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping")
                break
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(f"Error consuming from stream, retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)

    async def _parse_or_dead_letter(
        self, message_id: str, fields: dict[str, str]
    ) -> T | None:
        try:
            return self._parse_job(message_id, fields)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Unparseable message {message_id}: {e}")
            await self._move_to_dlq(message_id, fields, f"parse_error: {e}")
            await self.ack(message_id)
            return None

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """
        Claim messages idle longer than idle_timeout_ms.

        Messages delivered more than max_delivery_attempts times go to the
        DLQ; the rest are yielded with retry_count = deliveries - 1.
        """
        metrics = get_metrics()
        stream = self.stream_config.stream_name

        try:
            # [next_start_id, [(id, fields), ...], [deleted_ids]]
            result = await self.redis.xautoclaim(
                name=stream,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=min(count, self._queue_config.reclaim_batch_size),
            )
        except redis.ResponseError as e:
            if "unknown command" in str(e).lower():
                logger.warning("XAUTOCLAIM unavailable (Redis < 6.2), skipping reclaim")
            else:
                logger.error(f"Error reclaiming pending messages: {e}")
            return

        claimed = result[1] if result and len(result) > 1 else []
        if not claimed:
            return

        logger.info(f"Reclaimed {len(claimed)} pending messages from {stream}")
        deliveries = await self._get_delivery_counts([mid for mid, _ in claimed])
        limit = self._queue_config.max_delivery_attempts

        for message_id, fields in claimed:
            delivered = deliveries.get(message_id, 1)
            if delivered > limit:
                logger.warning(
                    f"Message {message_id} delivered {delivered}/{limit} times, "
                    f"moving to DLQ"
                )
                await self._move_to_dlq(message_id, fields, "max_retries_exceeded")
                await self.ack(message_id)
                metrics.dlq_max_retries.labels(queue=stream).inc()
                continue

            job = await self._parse_or_dead_letter(message_id, fields)
            if job is None:
                continue
            self._set_job_retry_count(job, delivered - 1)
            metrics.pending_reclaimed.labels(queue=stream).inc()
            yield job

    async def _get_delivery_counts(self, message_ids: list[str]) -> dict[str, int]:
        """Delivery count per message from XPENDING; 1 when unknown."""
        if not message_ids:
            return {}

        try:
            pending = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min="-",
                max="+",
                count=len(message_ids) * 2,
            )
        except redis.RedisError as e:
            logger.error(f"Error reading delivery counts: {e}")
            return {mid: 1 for mid in message_ids}

        wanted = set(message_ids)
        return {
            info["message_id"]: info["times_delivered"]
            for info in pending
            if info["message_id"] in wanted
        }

    async def ack(self, message_id: str) -> None:
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )
        logger.debug(f"Acked {message_id}")

    async def nack(self, message_id: str, error: str | None = None) -> None:
        """Copy the message to the DLQ with the error, then ack it."""
        entries = await self.redis.xrange(
            self.stream_config.stream_name, min=message_id, max=message_id
        )
        if entries:
            _, fields = entries[0]
            await self._move_to_dlq(message_id, fields, error)
        await self.ack(message_id)

    async def _move_to_dlq(
        self, original_id: str, fields: dict[str, str], error: str | None
    ) -> None:
        await self.redis.xadd(
            self.stream_config.dlq_stream_name,
            {
                **fields,
                "original_id": original_id,
                "error": error or "unknown",
                "failed_at": str(time.time()),
            },
            maxlen=DLQ_MAX_LENGTH,
        )
        logger.warning(f"Moved {original_id} to DLQ: {error}")

    async def get_pending_count(self) -> int:
        try:
            info = await self.redis.xpending(
                self.stream_config.stream_name,
                self.stream_config.consumer_group,
            )
        except redis.RedisError as e:
            logger.warning(f"Could not read pending count: {e}")
            return 0
        return info["pending"] if info else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (redis.RedisError, RuntimeError, OSError):
            return False
