"""
API authentication.

Manual triggers and read routes use the X-API-KEY header. Cron triggers
use `Authorization: Bearer <CRON_SECRET>`.
"""

import hmac

import structlog
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from src.config.settings import get_settings

logger = structlog.get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)
cron_bearer = HTTPBearer(auto_error=False)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    Returns:
        The validated API key, or "dev-mode" when no keys are configured

    Raises:
        HTTPException: 401 if the key is missing or invalid
    """
    settings = get_settings()

    if not settings.api_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )

    valid_keys = [k.strip() for k in settings.api_keys.split(",") if k.strip()]
    if api_key not in valid_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Security(cron_bearer),
) -> str:
    """
    Verify the cron bearer token.

    Without a configured CRON_SECRET, cron routes are open only in the
    development environment.

    Raises:
        HTTPException: 401 Unauthorized
    """
    settings = get_settings()

    if not settings.cron_secret:
        if settings.environment == "development":
            return "dev-mode"
        logger.warning("Cron request rejected: CRON_SECRET not configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if credentials is None or not hmac.compare_digest(
        credentials.credentials, settings.cron_secret
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    return "cron"
