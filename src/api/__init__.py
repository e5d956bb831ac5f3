"""
FastAPI trigger surface for content refreshes.

Provides:
- POST /content/refresh - Manual refresh (X-API-KEY)
- GET|POST /cron/fetch-content, /cron/fetch-linkedin - Scheduled refreshes
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
