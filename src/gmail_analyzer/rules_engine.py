"""Rules engine for deterministic spam classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gmail_analyzer.config import RulesConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleMatch:
    """Result of a rule match."""

    check: str  # sender, subject or keyword
    field: str  # field the pattern was found in
    pattern: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"check": self.check, "field": self.field, "pattern": self.pattern}

    def __str__(self) -> str:
        return f"{self.check} pattern '{self.pattern}' in {self.field}"


class RulesEngine:
    """Substring matcher over sender, subject and snippet.

    Checks run in a fixed order (sender patterns, subject phrases, then
    keywords against subject and snippet) and stop at the first hit. The
    engine never touches the network.
    """

    def __init__(self, config: RulesConfig):
        """Initialize with the configured pattern sets."""
        self.senders = tuple(p.lower() for p in config.senders)
        self.subjects = tuple(p.lower() for p in config.subjects)
        self.keywords = tuple(p.lower() for p in config.keywords)

    @property
    def pattern_count(self) -> int:
        return len(self.senders) + len(self.subjects) + len(self.keywords)

    def evaluate(self, sender: str, subject: str, snippet: str) -> RuleMatch | None:
        """Return the first matching rule, or None."""
        lower_sender = (sender or "").lower()
        lower_subject = (subject or "").lower()
        lower_snippet = (snippet or "").lower()

        for pattern in self.senders:
            if pattern in lower_sender:
                return RuleMatch("sender", "from", pattern)

        for pattern in self.subjects:
            if pattern in lower_subject:
                return RuleMatch("subject", "subject", pattern)

        for pattern in self.keywords:
            if pattern in lower_subject:
                return RuleMatch("keyword", "subject", pattern)
            if pattern in lower_snippet:
                return RuleMatch("keyword", "snippet", pattern)

        return None

    def is_spam(self, sender: str, subject: str, snippet: str) -> bool:
        """Check whether any configured pattern matches."""
        return self.evaluate(sender, subject, snippet) is not None
