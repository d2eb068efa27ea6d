"""
API test fixtures.

Provides a TestClient over a fresh app and AsyncMock services that
tests install through app.dependency_overrides.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from studyroom.api.deps import (
    get_diagnostics_service,
    get_dispatcher,
    get_job_service,
    get_orchestrator,
    get_retrieval_service,
)
from studyroom.api.main import create_app


@pytest.fixture
def client() -> TestClient:
    app = create_app()
    return TestClient(app)


@pytest.fixture
def mock_retrieval(client) -> AsyncMock:
    mock = AsyncMock()
    client.app.dependency_overrides[get_retrieval_service] = lambda: mock
    return mock


@pytest.fixture
def mock_orchestrator(client) -> AsyncMock:
    mock = AsyncMock()
    client.app.dependency_overrides[get_orchestrator] = lambda: mock
    return mock


@pytest.fixture
def mock_dispatch(client) -> MagicMock:
    mock = MagicMock()
    client.app.dependency_overrides[get_dispatcher] = lambda: mock
    return mock


@pytest.fixture
def mock_diagnostics(client) -> AsyncMock:
    mock = AsyncMock()
    client.app.dependency_overrides[get_diagnostics_service] = lambda: mock
    return mock


@pytest.fixture
def mock_job_service(client) -> AsyncMock:
    mock = AsyncMock()
    client.app.dependency_overrides[get_job_service] = lambda: mock
    return mock
