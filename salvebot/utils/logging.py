"""Logging setup and structured pipeline logging."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)


class StructuredPipelineLogger:
    """Structured logger for pipeline stage outcomes."""

    def log_stage(
        self,
        pipeline: str,
        stage: str,
        outcome: str,
        latency_ms: float,
        *,
        chatbot_id: str | None = None,
        document_id: str | None = None,
        error_reason: str | None = None,
        **fields: Any,
    ) -> None:
        """Log one stage execution with structured data."""
        log_data: dict[str, Any] = {
            "pipeline": pipeline,
            "stage": stage,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if chatbot_id:
            log_data["chatbot_id"] = chatbot_id
        if document_id:
            log_data["document_id"] = document_id
        if error_reason:
            log_data["error_reason"] = error_reason
        log_data.update(fields)

        log_msg = f"{pipeline} stage: {stage} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
