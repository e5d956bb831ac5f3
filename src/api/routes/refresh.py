"""
Manual refresh endpoints.

Runs are synchronous: the response carries the full run statistics.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.auth import verify_api_key
from src.api.dependencies import get_refresh_service
from src.api.models import ErrorResponse, RefreshResponse
from src.ingestion.schemas import Platform
from src.services.refresh_service import RefreshService
from src.services.schemas import RefreshTrigger

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/content")


def _parse_platforms(platform: list[str] | None) -> list[Platform] | None:
    if not platform:
        return None
    try:
        return [Platform(p.lower()) for p in platform]
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid platform. Valid: {', '.join(p.value for p in Platform)}",
        ) from None


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
    summary="Refresh creators",
    description="Fetch new content for every creator URL, or the given user's creators.",
)
async def refresh_content(
    user_id: str | None = Query(default=None, description="Only this user's creators"),
    platform: list[str] | None = Query(default=None, description="Limit to platforms"),
    _api_key: str = Depends(verify_api_key),
    service: RefreshService = Depends(get_refresh_service),
) -> dict:
    result = await service.run(
        RefreshTrigger.MANUAL,
        user_id=user_id,
        platforms=_parse_platforms(platform),
    )
    return result.to_dict()


@router.post(
    "/refresh/rss",
    response_model=RefreshResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
    summary="Refresh RSS feeds",
)
async def refresh_rss(
    user_id: str | None = Query(default=None, description="Only this user's creators"),
    _api_key: str = Depends(verify_api_key),
    service: RefreshService = Depends(get_refresh_service),
) -> dict:
    result = await service.run(
        RefreshTrigger.MANUAL, user_id=user_id, platforms=[Platform.RSS]
    )
    return result.to_dict()
