"""Structured logging for chatrelay."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredLogger:
    """Structured JSON logger for relayed chat requests.

    Every record carries the request id so a single stream can be followed
    from credential resolution to its terminal event. Credentials are never
    passed to this class.
    """

    def __init__(self, name: str = "chatrelay"):
        self.logger = logging.getLogger(name)

    def _emit(self, level: str, log_entry: Dict[str, Any]) -> None:
        log_message = json.dumps(log_entry, ensure_ascii=False, default=str)
        if level == "ERROR":
            self.logger.error(log_message)
        elif level == "WARNING":
            self.logger.warning(log_message)
        elif level == "DEBUG":
            self.logger.debug(log_message)
        else:
            self.logger.info(log_message)

    def log_stage(
        self,
        request_id: str,
        stage: str,
        elapsed_ms: int,
        level: str = "INFO",
        **fields: Any,
    ):
        """Log one diagnostic record for a relay stage.

        Args:
            request_id: Unique request identifier
            stage: Stage name (e.g. "resolved", "first_chunk", "completed")
            elapsed_ms: Milliseconds since the request was dispatched
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            **fields: Extra stage-specific fields; None values are dropped
        """
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "request_id": request_id,
            "stage": stage,
            "elapsed_ms": elapsed_ms,
        }
        log_entry.update({k: v for k, v in fields.items() if v is not None})
        self._emit(level, log_entry)

    def log_request(
        self,
        request_id: str,
        provider: Optional[str],
        model: Optional[str],
        outcome: str,  # "completed", "failed" or "cancelled"
        latency_ms: int = 0,
        chunk_count: int = 0,
        error_code: Optional[str] = None,
        upstream_status: Optional[int] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        tokens_per_second: Optional[float] = None,
        cost_usd: Optional[float] = None,
    ):
        """Log a request summary as structured JSON."""
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": "ERROR" if outcome == "failed" else "INFO",
            "request_id": request_id,
            "stage": "summary",
            "provider": provider,
            "model": model,
            "outcome": outcome,
            "latency_ms": latency_ms,
            "chunk_count": chunk_count,
        }

        if outcome == "failed":
            if error_code:
                log_entry["error_code"] = error_code
            if upstream_status:
                log_entry["upstream_status"] = upstream_status

        if input_tokens is not None:
            log_entry["input_tokens"] = input_tokens
        if output_tokens is not None:
            log_entry["output_tokens"] = output_tokens
        if tokens_per_second is not None:
            log_entry["tokens_per_second"] = round(tokens_per_second, 2)
        if cost_usd is not None:
            log_entry["cost_usd"] = cost_usd

        self._emit(log_entry["level"], log_entry)


# Global structured logger instance
structured_logger = StructuredLogger()
