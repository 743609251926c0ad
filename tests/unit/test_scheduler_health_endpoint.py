"""Tests for scheduler health check endpoint."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from src.main import app


def _job_status(*, consecutive_failures: int = 0, last_error: str | None = None) -> dict:
    return {
        "job_name": "routine_generation",
        "last_success": "2024-01-01T00:00:00Z",
        "last_failure": "2024-01-01T01:00:00Z" if consecutive_failures else None,
        "last_error": last_error,
        "last_result": None,
        "consecutive_failures": consecutive_failures,
        "success_count": 10,
        "failure_count": consecutive_failures,
        "currently_running": False,
        "current_run_started": None,
    }


@pytest.fixture
def client() -> TestClient:
    """Create a test client for FastAPI app."""
    return TestClient(app)


@pytest.mark.unit
def test_health_endpoint_returns_healthy(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_scheduler_health_endpoint_all_jobs_healthy(client: TestClient) -> None:
    with patch("src.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(return_value=_job_status())
        mock_tracker.get_dead_letter_queue = lambda: []

        response = client.get("/health/scheduler")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "routine_generation" in data["jobs"]
    assert data["dead_letter_queue_size"] == 0


@pytest.mark.unit
def test_scheduler_health_endpoint_degraded_with_failures(client: TestClient) -> None:
    with patch("src.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(
            return_value=_job_status(consecutive_failures=1, last_error="Todoist unreachable")
        )
        mock_tracker.get_dead_letter_queue = lambda: []

        response = client.get("/health/scheduler")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


@pytest.mark.unit
def test_scheduler_health_endpoint_critical_with_dlq(client: TestClient) -> None:
    mock_dlq = [
        {
            "job_name": "routine_generation",
            "error": "Todoist unreachable",
            "context": "Failed 3 consecutive times",
        }
    ]

    with patch("src.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(
            return_value=_job_status(consecutive_failures=3, last_error="Todoist unreachable")
        )
        mock_tracker.get_dead_letter_queue = lambda: mock_dlq

        response = client.get("/health/scheduler")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "critical"
    assert data["dead_letter_queue_size"] == 1
    assert data["dead_letter_queue"] == mock_dlq
