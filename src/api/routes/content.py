"""
Content read endpoints.
"""

from fastapi import APIRouter, Depends, Query

from src.api.auth import verify_api_key
from src.api.dependencies import get_content_service
from src.api.models import ContentListResponse
from src.content.service import ContentService
from src.ingestion.schemas import Content

router = APIRouter(prefix="/content")


@router.get(
    "",
    response_model=ContentListResponse,
    summary="List content",
    description="Newest first. Filter by creator, platform or owning user.",
)
async def list_content(
    creator_id: str | None = Query(default=None),
    platform: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _api_key: str = Depends(verify_api_key),
    service: ContentService = Depends(get_content_service),
) -> ContentListResponse:
    items, total = await service.list_content(
        creator_id=creator_id,
        platform=platform,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return ContentListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/{content_id}", response_model=Content, summary="Get one content item")
async def get_content(
    content_id: str,
    _api_key: str = Depends(verify_api_key),
    service: ContentService = Depends(get_content_service),
) -> Content:
    return await service.get_content(content_id)
