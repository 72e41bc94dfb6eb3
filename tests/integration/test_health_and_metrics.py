"""Integration tests for /health, /healthz and /metrics."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest


@pytest.mark.asyncio
async def test_health_is_always_ok(api_client: httpx.AsyncClient) -> None:
    """Test the liveness endpoint."""
    response = await api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_healthz_ok_with_database(api_client: httpx.AsyncClient) -> None:
    """Test readiness against the test database."""
    response = await api_client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "components": {"db": "ok"}}


@pytest.mark.asyncio
async def test_healthz_503_when_database_down(api_client: httpx.AsyncClient) -> None:
    """Test that an unreachable database degrades readiness."""
    with patch(
        "paperlens.api.routes.health.check_db",
        AsyncMock(return_value=(False, "error: OperationalError")),
    ):
        response = await api_client.get("/healthz")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_metrics_exposes_pipeline_series(api_client: httpx.AsyncClient) -> None:
    """Test that the Prometheus exposition lists the pipeline metrics."""
    response = await api_client.get("/metrics")

    assert response.status_code == 200
    assert "pipeline_step_latency_ms" in response.text
    assert "external_tool_errors_total" in response.text
    assert "documents_ingested_total" in response.text
