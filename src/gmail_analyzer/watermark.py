"""Watermark persistence and fetch-window logic."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from gmail_analyzer.exceptions import PersistenceError, WatermarkNotFound
from gmail_analyzer.models import Message, Watermark

logger = logging.getLogger(__name__)


class WatermarkStore:
    """JSON file holding the timestamp of the last processed message.

    The file contains a single object: ``{"timestamp": <epoch ms>}``.
    """

    def __init__(self, path: str | Path):
        """Initialize the store with the watermark file path."""
        self.path = Path(path)

    def read(self) -> Watermark:
        """Read the persisted watermark.

        Raises:
            WatermarkNotFound: No watermark has been written yet.
            PersistenceError: The file exists but cannot be read or decoded.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise WatermarkNotFound(f"No watermark at {self.path}") from None
        except OSError as e:
            raise PersistenceError(f"Failed to read watermark {self.path}: {e}") from e

        try:
            data = json.loads(content)
            timestamp = data["timestamp"]
        except (json.JSONDecodeError, TypeError, KeyError) as e:
            raise PersistenceError(f"Corrupt watermark file {self.path}: {e}") from e

        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise PersistenceError(
                f"Corrupt watermark file {self.path}: timestamp is {timestamp!r}"
            )
        return Watermark(timestamp=int(timestamp))

    def write(self, watermark: Watermark) -> None:
        """Persist the watermark, raising PersistenceError on I/O failure."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(watermark.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            raise PersistenceError(f"Failed to write watermark {self.path}: {e}") from e
        logger.debug(f"Watermark saved: {watermark.timestamp}")

    def load_or_initialize(self) -> Watermark:
        """Read the watermark, creating one set to "now" on the first run.

        A fresh install never backfills mail older than its first run.
        """
        try:
            return self.read()
        except WatermarkNotFound:
            watermark = Watermark.now()
            self.write(watermark)
            logger.info("First run detected, watermark initialized to now")
            return watermark


def filter_new_messages(messages: Iterable[Message], watermark: Watermark) -> list[Message]:
    """Drop messages already covered by the watermark.

    The source query only has day granularity, so it returns messages from
    the watermark's whole day. Arrival time is compared when the source
    reports it, since the Date header is set by the sender. Messages with no
    usable time are kept.
    """
    fresh = []
    for message in messages:
        date_ms = message.received_ms
        if date_ms is not None and date_ms <= watermark.timestamp:
            continue
        fresh.append(message)
    return fresh


def next_watermark(messages: Iterable[Message], current: Watermark) -> Watermark | None:
    """Return the advanced watermark for a processed batch, or None.

    The new value is the maximum valid arrival time (or Date header) in the
    batch, and only when it is strictly greater than the current watermark.
    """
    dates = [m.received_ms for m in messages]
    valid = [d for d in dates if d is not None]
    if not valid:
        return None
    latest = max(valid)
    if latest > current.timestamp:
        return Watermark(timestamp=latest)
    return None
