"""Structured logging for pipeline steps."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredStepLogger:
    """Structured logger for ingestion pipeline steps and external tools."""

    def log_step(
        self,
        upload_id: str,
        step: str,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
        **fields: Any,
    ) -> None:
        """Log a pipeline step with structured data."""
        log_data: dict[str, Any] = {
            "upload_id": upload_id,
            "step": step,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            **fields,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Pipeline step: {step} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})


step_logger = StructuredStepLogger()
