"""
Platform detection playground.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.auth import verify_api_key
from src.api.models import DetectResponse
from src.ingestion.platform_detector import PlatformDetectionError, detect

router = APIRouter()


@router.get(
    "/detect",
    response_model=DetectResponse,
    summary="Detect the platform of a URL",
)
async def detect_platform(
    url: str = Query(..., description="Profile, channel or feed URL"),
    _api_key: str = Depends(verify_api_key),
) -> DetectResponse:
    try:
        info = detect(url)
    except PlatformDetectionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e)},
        ) from e
    return DetectResponse(
        platform=info.platform.value,
        platform_user_id=info.platform_user_id,
        profile_url=info.profile_url,
        metadata=info.metadata,
    )
