"""
Refresh orchestration configuration.

Overridable via environment variables prefixed with REFRESH_.

Example:
    REFRESH_LINKEDIN_BATCH_SIZE=5
    REFRESH_SUMMARY_SELECTION_CAP=20
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RefreshConfig(BaseSettings):
    """Configuration for the refresh orchestrator."""

    model_config = SettingsConfigDict(
        env_prefix="REFRESH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LinkedIn cron path
    linkedin_batch_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Creators refreshed concurrently per LinkedIn batch",
    )
    linkedin_batch_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between LinkedIn batches",
    )

    # Fetch-state writeback
    fetch_state_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Compare-and-swap attempts before giving up on a state write",
    )

    # Summary hand-off
    summary_selection_cap: int = Field(
        default=50,
        ge=0,
        description="Most content ids queued for summaries per run",
    )
    summary_sub_batch_size: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Content ids per summary queue message",
    )
