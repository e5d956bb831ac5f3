"""
Summary queue and worker configuration.

Overridable via environment variables prefixed with SUMMARY_.

Example:
    SUMMARY_STREAM_NAME=summary_queue
    SUMMARY_MAX_DELIVERY_ATTEMPTS=5
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SummaryConfig(BaseSettings):
    """Configuration for the summary hand-off and its worker."""

    model_config = SettingsConfigDict(
        env_prefix="SUMMARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis stream
    stream_name: str = Field(
        default="summary_queue",
        description="Redis stream carrying summary jobs.",
    )
    consumer_group: str = Field(
        default="summary_workers",
        description="Consumer group shared by summary workers.",
    )
    dlq_stream_name: str = Field(
        default="summary_queue:dlq",
        description="Dead letter stream for jobs that keep failing.",
    )
    max_stream_length: int = Field(
        default=10_000,
        description="Approximate stream length kept after trimming.",
    )

    # Reclaim
    idle_timeout_ms: int = Field(
        default=120_000,
        ge=1_000,
        le=900_000,
        description="Idle time before another worker reclaims a job (ms).",
    )
    max_delivery_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Deliveries before a job is dead-lettered.",
    )

    # Worker
    worker_batch_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Jobs read per XREADGROUP call.",
    )
    block_ms: int = Field(
        default=5_000,
        ge=100,
        description="How long a read blocks waiting for jobs (ms).",
    )

    # Remote summarizer
    model: str = Field(
        default="gpt-4o-mini",
        description="Model name passed to the summarizer endpoint.",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for one summarizer request.",
    )
