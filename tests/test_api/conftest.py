"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.dependencies import get_content_service, get_database, get_refresh_service
from src.services.schemas import RefreshRunResult, RunStats


def _make_run_result(new: int = 0, creator_count: int = 0, **stats) -> RefreshRunResult:
    """Helper to create a RefreshRunResult with the given totals."""
    return RefreshRunResult(
        success=True,
        message=f"Fetched {new} new items from {creator_count} creators",
        stats=RunStats(new=new, **stats),
    )


@pytest.fixture
def make_run_result():
    return _make_run_result


@pytest.fixture
def mock_refresh_service():
    """Mock RefreshService."""
    service = AsyncMock()
    service.run = AsyncMock(return_value=_make_run_result())
    service.refresh_linkedin = AsyncMock(return_value=_make_run_result())
    return service


@pytest.fixture
def mock_content_service():
    """Mock ContentService."""
    service = AsyncMock()
    service.list_content = AsyncMock(return_value=([], 0))
    return service


@pytest.fixture
def api_settings(test_settings):
    """Settings every route sees; tests mutate fields as needed."""
    with patch("src.api.auth.get_settings", return_value=test_settings):
        yield test_settings


@pytest.fixture
def client(api_settings, mock_refresh_service, mock_content_service, mock_database):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()

    app.dependency_overrides[get_refresh_service] = lambda: mock_refresh_service
    app.dependency_overrides[get_content_service] = lambda: mock_content_service
    app.dependency_overrides[get_database] = lambda: mock_database

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
