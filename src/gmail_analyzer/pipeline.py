"""Two-stage classification pipeline: rules first, LLM for the rest."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from gmail_analyzer.config import Config
from gmail_analyzer.exceptions import InferenceError
from gmail_analyzer.llm_client import SpamAnalysis
from gmail_analyzer.models import (
    ClassificationMethod,
    ClassificationResult,
    Message,
    RunSummary,
    utc_now_iso,
)
from gmail_analyzer.rules_engine import RulesEngine

logger = logging.getLogger(__name__)

RULE_MATCH_SUMMARY = "Flagged as spam: matched rule"
AI_FAILED_SUMMARY = "Ollama analysis failed, treating as legitimate"


class SpamClassifier(Protocol):
    """Anything that can classify a message semantically."""

    def classify(self, message: Message) -> SpamAnalysis:
        ...


@dataclass
class PipelineContext:
    """Configuration, stages and accumulators shared by one pipeline run."""

    config: Config
    rules_engine: RulesEngine
    classifier: SpamClassifier
    summary: RunSummary = field(default_factory=RunSummary)


class ClassificationPipeline:
    """Classifies messages one at a time, in arrival order."""

    def __init__(self, context: PipelineContext):
        """Initialize the pipeline with its context."""
        self.context = context

    @property
    def summary(self) -> RunSummary:
        return self.context.summary

    def classify_message(self, message: Message) -> ClassificationResult:
        """Classify a single message and record it in the summary."""
        result = self._classify(message)
        self.context.summary.record(result)
        return result

    def classify_all(self, messages: Iterable[Message]) -> list[ClassificationResult]:
        """Classify a batch, preserving input order."""
        results = [self.classify_message(message) for message in messages]

        summary = self.context.summary
        logger.info(
            f"Analysis summary: {summary.total} total, "
            f"{summary.rule_based} rule-based, {summary.ai} AI "
            f"({summary.ai_failed} failed), {summary.spam} spam flagged"
        )
        return results

    def _classify(self, message: Message) -> ClassificationResult:
        # Stage 1: rules
        match = self.context.rules_engine.evaluate(
            message.sender, message.subject, message.snippet
        )
        if match:
            logger.info(f"[RULE] {message.sender} - {message.subject} ({match})")
            return ClassificationResult(
                id=message.id,
                is_spam=True,
                method=ClassificationMethod.RULE_BASED,
                summary=RULE_MATCH_SUMMARY,
                sender=message.sender,
                subject=message.subject,
                timestamp=utc_now_iso(),
            )

        # Stage 2: LLM, failing open
        try:
            analysis = self.context.classifier.classify(message)
        except InferenceError as e:
            logger.warning(f"[AI-FAILED] {message.sender} - {message.subject}: {e}")
            return ClassificationResult(
                id=message.id,
                is_spam=False,
                method=ClassificationMethod.AI_FAILED_FALLBACK,
                summary=AI_FAILED_SUMMARY,
                sender=message.sender,
                subject=message.subject,
                timestamp=utc_now_iso(),
                error=str(e) or type(e).__name__,
            )

        status = "SPAM" if analysis.is_spam else "LEGIT"
        logger.info(f"[AI] {status} {message.sender} - {message.subject}")
        return ClassificationResult(
            id=message.id,
            is_spam=analysis.is_spam,
            method=ClassificationMethod.AI_BASED,
            summary=analysis.summary,
            sender=analysis.sender or message.sender,
            subject=analysis.subject or message.subject,
            timestamp=analysis.timestamp or utc_now_iso(),
            confidence=analysis.confidence,
        )
