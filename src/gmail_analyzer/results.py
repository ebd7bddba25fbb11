"""Result snapshot written once per run for the review tooling."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from gmail_analyzer.exceptions import PersistenceError
from gmail_analyzer.models import ClassificationResult

logger = logging.getLogger(__name__)


class ResultSink:
    """Writes the batch of results as a JSON array.

    A single fixed file is overwritten on every run; there are no
    per-day snapshots.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def write(self, results: Sequence[ClassificationResult]) -> Path:
        """Persist the batch, raising PersistenceError on I/O failure."""
        payload = [result.to_dict() for result in results]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to write results {self.path}: {e}") from e

        logger.info(f"Results saved to: {self.path}")
        return self.path

    def load(self) -> list[dict[str, Any]]:
        """Read the last snapshot. Returns [] when none has been written."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read results {self.path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Result snapshot {self.path} is not a JSON array")
        return data
