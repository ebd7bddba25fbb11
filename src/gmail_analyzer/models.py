"""Domain model for messages, watermarks and classification results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any


def parse_date_ms(value: str | None) -> int | None:
    """Parse an RFC 2822 or ISO-8601 date into epoch milliseconds.

    Returns None for empty or malformed values. Dates without a zone are
    taken as UTC.
    """
    if not value or not value.strip():
        return None

    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Message:
    """Message summary fetched from the mail source."""

    id: str
    thread_id: str = ""
    date: str = ""
    sender: str = ""
    subject: str = ""
    snippet: str = ""
    internal_date: int | None = None  # arrival time in epoch ms, from Gmail

    @property
    def date_ms(self) -> int | None:
        """Parsed date in epoch milliseconds, or None when malformed."""
        return parse_date_ms(self.date)

    @property
    def received_ms(self) -> int | None:
        """Arrival time when the source reports it, else the Date header."""
        if self.internal_date is not None:
            return self.internal_date
        return self.date_ms


@dataclass(frozen=True)
class Watermark:
    """Timestamp boundary of the last processed message."""

    timestamp: int  # epoch milliseconds

    @classmethod
    def now(cls) -> Watermark:
        return cls(timestamp=int(datetime.now(timezone.utc).timestamp() * 1000))

    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    def to_dict(self) -> dict[str, int]:
        return {"timestamp": self.timestamp}


class ClassificationMethod(str, Enum):
    """How a classification was reached."""

    RULE_BASED = "rule-based"
    AI_BASED = "ai-based"
    AI_FAILED_FALLBACK = "ai-failed-fallback"


@dataclass(frozen=True)
class ClassificationResult:
    """Classification outcome for one message."""

    id: str
    is_spam: bool
    method: ClassificationMethod
    summary: str
    sender: str
    subject: str
    timestamp: str
    confidence: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the snapshot representation.

        ``confidence`` and ``error`` are omitted when unset.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "isSpam": self.is_spam,
            "method": self.method.value,
            "summary": self.summary,
            "sender": self.sender,
            "subject": self.subject,
        }
        if self.confidence is not None:
            data["confidence"] = self.confidence
        data["timestamp"] = self.timestamp
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RunSummary:
    """Counts surfaced after a batch has been classified."""

    total: int = 0
    rule_based: int = 0
    ai: int = 0
    ai_failed: int = 0
    spam: int = 0

    @property
    def legitimate(self) -> int:
        return self.total - self.spam

    def record(self, result: ClassificationResult) -> None:
        """Account for one classification result."""
        self.total += 1
        if result.method == ClassificationMethod.RULE_BASED:
            self.rule_based += 1
        else:
            self.ai += 1
            if result.method == ClassificationMethod.AI_FAILED_FALLBACK:
                self.ai_failed += 1
        if result.is_spam:
            self.spam += 1

    @classmethod
    def from_results(cls, results: list[ClassificationResult]) -> RunSummary:
        summary = cls()
        for result in results:
            summary.record(result)
        return summary

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "rule_based": self.rule_based,
            "ai": self.ai,
            "ai_failed": self.ai_failed,
            "spam": self.spam,
            "legitimate": self.legitimate,
        }
