"""Run orchestration: watermark, fetch, classify, persist, advance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gmail_analyzer.config import Config
from gmail_analyzer.exceptions import GmailAnalyzerError
from gmail_analyzer.mail_source import MailSource
from gmail_analyzer.models import ClassificationResult, Message, RunSummary, Watermark
from gmail_analyzer.pipeline import ClassificationPipeline, PipelineContext, SpamClassifier
from gmail_analyzer.results import ResultSink
from gmail_analyzer.rules_engine import RulesEngine
from gmail_analyzer.structured_logger import StructuredLogger
from gmail_analyzer.watermark import WatermarkStore, filter_new_messages, next_watermark

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Outcome of one completed run."""

    previous_watermark: Watermark
    watermark: Watermark
    messages: list[Message] = field(default_factory=list)
    results: list[ClassificationResult] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    @property
    def watermark_advanced(self) -> bool:
        return self.watermark.timestamp > self.previous_watermark.timestamp


class Runner:
    """Executes one fetch and classify cycle.

    The watermark only moves after the snapshot has been written, so a run
    that fails part way re-fetches the same window next time.
    """

    def __init__(
        self,
        source: MailSource,
        pipeline: ClassificationPipeline,
        watermark_store: WatermarkStore,
        sink: ResultSink,
        audit: StructuredLogger | None = None,
    ):
        self.source = source
        self.pipeline = pipeline
        self.watermark_store = watermark_store
        self.sink = sink
        self.audit = audit or StructuredLogger()

    @classmethod
    def from_config(
        cls,
        config: Config,
        source: MailSource,
        classifier: SpamClassifier,
    ) -> Runner:
        context = PipelineContext(
            config=config,
            rules_engine=RulesEngine(config.rules),
            classifier=classifier,
        )
        return cls(
            source=source,
            pipeline=ClassificationPipeline(context),
            watermark_store=WatermarkStore(config.state.watermark_path),
            sink=ResultSink(config.state.results_path),
            audit=StructuredLogger(config.logging.audit_file),
        )

    def fetch_new_messages(self, watermark: Watermark) -> list[Message]:
        """Fetch messages newer than the watermark.

        Raises:
            SourceFetchError: The source failed to list or fetch.
        """
        ids = self.source.list_new_message_ids(watermark.timestamp)
        if not ids:
            return []

        messages = self.source.fetch_details(ids)
        fresh = filter_new_messages(messages, watermark)
        skipped = len(messages) - len(fresh)
        if skipped:
            logger.debug(f"Skipped {skipped} emails already covered by the watermark")
        return fresh

    def run(self) -> RunReport:
        """Run one full cycle.

        Raises:
            SourceFetchError: Fetching failed; nothing was written.
            PersistenceError: Reading or writing state failed.
        """
        self.pipeline.context.summary = RunSummary()
        model = self.pipeline.context.config.ollama.model

        try:
            watermark = self.watermark_store.load_or_initialize()
            self.audit.log_run_started(watermark.timestamp, model)
            report = self._run(watermark)
        except GmailAnalyzerError as e:
            logger.error(f"Run failed: {e}")
            self.audit.log_error(type(e).__name__, str(e))
            raise

        self.audit.log_run_completed(report.summary, report.watermark.timestamp)
        return report

    def _run(self, watermark: Watermark) -> RunReport:
        logger.info(f"Fetching emails newer than {watermark.as_datetime().isoformat()}")
        messages = self.fetch_new_messages(watermark)

        if messages:
            logger.info(f"Analyzing {len(messages)} emails...")
        else:
            logger.info("No new emails since last run")

        results = self.pipeline.classify_all(messages)
        for result in results:
            self.audit.log_message_classified(result)

        self.sink.write(results)

        new_watermark = next_watermark(messages, watermark)
        if new_watermark is not None:
            self.watermark_store.write(new_watermark)
            logger.info(f"Watermark advanced to {new_watermark.as_datetime().isoformat()}")

        return RunReport(
            previous_watermark=watermark,
            watermark=new_watermark or watermark,
            messages=messages,
            results=results,
            summary=self.pipeline.summary,
        )
