"""Reclaim and retry settings shared by Redis Streams queues."""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Attributes:
        idle_timeout_ms: A delivered but unacked message becomes eligible
            for reclaim by another consumer after this long.
        max_delivery_attempts: Deliveries allowed before the message is
            dead-lettered.
        reclaim_batch_size: Upper bound on messages per XAUTOCLAIM call.
        backoff_base_delay / backoff_max_delay: consume() retry delays after
            Redis errors.
    """

    idle_timeout_ms: int = 30_000
    max_delivery_attempts: int = 3
    reclaim_batch_size: int = 10

    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
