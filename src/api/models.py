"""
Request and response models for the content tracker API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.ingestion.schemas import Content


class ErrorResponse(BaseModel):
    """Body of every 500 response."""

    error: str = Field(..., description="Error summary")
    details: str | None = Field(default=None, description="Underlying cause")


class UrlResultModel(BaseModel):
    url: str
    platform: str
    status: str = Field(..., description="pending, fetching, empty, success or error")
    fetched: int | None = None
    new: int | None = None
    updated: int | None = None
    errors: int | None = None
    error: str | None = None
    message: str | None = None


class CreatorResultModel(BaseModel):
    id: str
    name: str
    urls: list[UrlResultModel] = Field(default_factory=list)


class RefreshStatsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processed: int = Field(..., description="Items returned by fetchers")
    new: int = Field(..., description="Items stored for the first time")
    updated: int = Field(..., description="Existing items whose mutable fields changed")
    errors: int = Field(..., description="Failed URLs plus failed items")
    creators: list[CreatorResultModel] = Field(default_factory=list)
    summary_generation_error: str | None = Field(
        default=None,
        alias="summaryGenerationError",
        description="Why summary jobs could not be queued",
    )
    linkedin: dict[str, Any] | None = Field(
        default=None,
        description="Per-creator stats and totals of the batched LinkedIn run",
    )


class RefreshResponse(BaseModel):
    """Run result shared by every refresh trigger."""

    success: bool
    message: str = Field(..., description='"Fetched {new} new items from {n} creators"')
    stats: RefreshStatsModel
    timestamp: str


class ContentListResponse(BaseModel):
    items: list[Content] = Field(default_factory=list)
    total: int = Field(..., description="Rows matching the filters")
    limit: int
    offset: int


class DetectResponse(BaseModel):
    """Platform detection result for a URL."""

    platform: str
    platform_user_id: str
    profile_url: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ComponentHealth(BaseModel):
    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    configured_platforms: list[str] = Field(
        default_factory=list,
        description="Platforms whose credentials are present",
    )
    summary_queue_pending: int | None = Field(
        default=None,
        description="Unacked summary jobs, when Redis is reachable",
    )
    version: str = "0.1.0"
