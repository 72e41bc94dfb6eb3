"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - pipeline_step_latency_ms{step, outcome}
    - external_tool_errors_total{tool, reason}
    - documents_ingested_total{complexity}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
