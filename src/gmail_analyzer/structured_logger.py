"""Structured audit logging for gmail_analyzer."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gmail_analyzer.models import ClassificationResult, RunSummary

logger = logging.getLogger(__name__)


class StructuredLogger:
    """Append-only JSONL audit trail."""

    def __init__(self, log_file: str | Path | None = None):
        """Initialize structured logger.

        Args:
            log_file: Path to JSON lines file, or None to disable
        """
        self.log_file = Path(log_file) if log_file else None

    def log_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Log a structured event.

        Args:
            event_type: Type of event (e.g., 'run_started', 'message_classified')
            data: Event data
        """
        if not self.log_file:
            return

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **data,
        }

        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(event) + "\n")
        except OSError as e:
            logger.error(f"Failed to write to audit log: {e}")

    def log_run_started(self, watermark: int, model: str) -> None:
        self.log_event("run_started", {"watermark": watermark, "model": model})

    def log_message_classified(self, result: ClassificationResult) -> None:
        """Log one classification outcome.

        Args:
            result: Classification result for the message
        """
        self.log_event(
            "message_classified",
            {
                "message_id": self._sanitize_for_json(result.id),
                "method": result.method.value,
                "is_spam": result.is_spam,
                "confidence": result.confidence,
                "error": result.error,
            },
        )

    def log_run_completed(self, summary: RunSummary, watermark: int) -> None:
        self.log_event("run_completed", {"summary": summary.to_dict(), "watermark": watermark})

    def log_error(self, error_type: str, message: str, details: dict[str, Any] | None = None) -> None:
        """Log error event.

        Args:
            error_type: Type of error
            message: Error message
            details: Additional error details
        """
        self.log_event(
            "error",
            {
                "error_type": error_type,
                "message": message,
                "details": details or {},
            },
        )

    def _sanitize_for_json(self, value: str) -> str:
        """Strip control characters and cap length."""
        sanitized = "".join(c for c in value if c.isprintable() or c in [" ", "\t"])
        if len(sanitized) > 500:
            sanitized = sanitized[:497] + "..."
        return sanitized
