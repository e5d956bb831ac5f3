"""
Scheduled refresh endpoints.

Schedulers call these with `Authorization: Bearer <CRON_SECRET>`; both GET
and POST are accepted.
"""

import structlog
from fastapi import APIRouter, Depends

from src.api.auth import verify_cron_secret
from src.api.dependencies import get_refresh_service
from src.api.models import ErrorResponse, RefreshResponse
from src.services.refresh_service import RefreshService
from src.services.schemas import RefreshTrigger

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/cron")


@router.api_route(
    "/fetch-content",
    methods=["GET", "POST"],
    response_model=RefreshResponse,
    response_model_exclude_none=True,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Global refresh of all creators",
)
async def cron_fetch_content(
    _auth: str = Depends(verify_cron_secret),
    service: RefreshService = Depends(get_refresh_service),
) -> dict:
    result = await service.run(RefreshTrigger.CRON)
    return result.to_dict()


@router.api_route(
    "/fetch-linkedin",
    methods=["GET", "POST"],
    response_model=RefreshResponse,
    response_model_exclude_none=True,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Batched LinkedIn refresh",
)
async def cron_fetch_linkedin(
    _auth: str = Depends(verify_cron_secret),
    service: RefreshService = Depends(get_refresh_service),
) -> dict:
    result = await service.refresh_linkedin()
    return result.to_dict()
