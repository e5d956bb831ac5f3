"""
Redis Streams queues with pending-message reclaim and a dead letter queue.

Example:
    from src.queues import BaseRedisQueue, QueueConfig, StreamConfig

    class SummaryQueue(BaseRedisQueue[SummaryJob]):
        def _get_stream_config(self) -> StreamConfig:
            return StreamConfig(
                stream_name="summary_queue",
                consumer_group="summary_workers",
                dlq_stream_name="summary_queue:dlq",
            )
        ...
"""

from src.queues.backoff import ExponentialBackoff
from src.queues.base import BaseRedisQueue, StreamConfig
from src.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "ExponentialBackoff", "QueueConfig", "StreamConfig"]
