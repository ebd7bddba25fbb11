"""Mail source contract and its Gmail API implementation."""

from __future__ import annotations

import html
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from googleapiclient.discovery import Resource
from googleapiclient.http import BatchHttpRequest

from gmail_analyzer.exceptions import SourceFetchError
from gmail_analyzer.models import Message

if TYPE_CHECKING:
    from gmail_analyzer.config import GmailConfig

logger = logging.getLogger(__name__)

# Gmail accepts at most 100 calls per batch request
MAX_BATCH_SIZE = 100

METADATA_HEADERS = ["Date", "From", "Subject"]


def _parse_internal_date(value: Any) -> int | None:
    # Gmail returns internalDate as a string of epoch milliseconds
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class MailSource(Protocol):
    """Provider of newly arrived message summaries."""

    def list_new_message_ids(self, after_timestamp: int) -> list[str]:
        """IDs of messages that arrived on or after the day of ``after_timestamp``."""
        ...

    def fetch_details(self, ids: Sequence[str]) -> list[Message]:
        """Summaries for ``ids``, in the same order."""
        ...


def build_query(
    after_timestamp: int,
    label: str = "inbox",
    exclude_labels: Sequence[str] = ("spam", "trash"),
) -> str:
    """Build the Gmail search query for messages after a timestamp.

    Gmail's ``after:`` operator only has day granularity; the local date of
    the timestamp is used.
    """
    after = datetime.fromtimestamp(after_timestamp / 1000)
    parts = [f"after:{after.year}/{after.month}/{after.day}", f"label:{label}"]
    parts.extend(f"-label:{excluded}" for excluded in exclude_labels)
    return " ".join(parts)


class GmailMailSource:
    """Lists and fetches inbox messages through the Gmail API."""

    def __init__(
        self,
        service: Resource,
        user_id: str = "me",
        *,
        label: str = "inbox",
        exclude_labels: Sequence[str] = ("spam", "trash"),
        page_size: int = 100,
        num_retries: int = 3,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._label = label
        self._exclude_labels = tuple(exclude_labels)
        self._page_size = page_size
        self._num_retries = num_retries

    @classmethod
    def from_config(cls, service: Resource, config: GmailConfig) -> GmailMailSource:
        return cls(
            service,
            config.user_id,
            label=config.label,
            exclude_labels=config.exclude_labels,
            page_size=config.page_size,
            num_retries=config.num_retries,
        )

    def list_new_message_ids(self, after_timestamp: int) -> list[str]:
        """Page through the message list for the day-granular query.

        Raises:
            SourceFetchError: On any API failure.
        """
        query = build_query(after_timestamp, self._label, self._exclude_labels)
        logger.info(f"Querying emails with: {query}")

        ids: list[str] = []
        page_token: str | None = None
        while True:
            kwargs: dict[str, Any] = {
                "userId": self._user_id,
                "q": query,
                "maxResults": self._page_size,
            }
            if page_token:
                kwargs["pageToken"] = page_token

            try:
                response = (
                    self._service.users()
                    .messages()
                    .list(**kwargs)
                    .execute(num_retries=self._num_retries)
                )
            except Exception as e:
                raise SourceFetchError(f"Failed to list messages: {e}") from e

            ids.extend(msg["id"] for msg in response.get("messages", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        # The same id can show up on two pages if mail arrives mid-listing
        ids = list(dict.fromkeys(ids))
        logger.info(f"Found {len(ids)} candidate emails")
        return ids

    def fetch_details(self, ids: Sequence[str]) -> list[Message]:
        """Fetch header metadata and snippets using Gmail batch requests.

        Responses are keyed by message id and returned in the order of
        ``ids``. A failure for any single id fails the whole call so that no
        message is silently dropped.

        Raises:
            SourceFetchError: If any message could not be fetched.
        """
        if not ids:
            return []

        raw_messages: dict[str, dict[str, Any]] = {}
        for start in range(0, len(ids), MAX_BATCH_SIZE):
            chunk = ids[start : start + MAX_BATCH_SIZE]
            raw_messages.update(self._fetch_batch(chunk))

        return [self._to_message(msg_id, raw_messages[msg_id]) for msg_id in ids]

    def _fetch_batch(self, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        responses: dict[str, dict[str, Any]] = {}
        errors: dict[str, Exception] = {}

        def _callback(
            request_id: str,
            response: dict[str, Any] | None,
            exception: Exception | None,
        ) -> None:
            if exception is not None:
                errors[request_id] = exception
            elif response is not None:
                responses[request_id] = response

        batch: BatchHttpRequest = self._service.new_batch_http_request(callback=_callback)
        for msg_id in ids:
            batch.add(
                self._service.users()
                .messages()
                .get(
                    userId=self._user_id,
                    id=msg_id,
                    format="metadata",
                    metadataHeaders=METADATA_HEADERS,
                ),
                request_id=msg_id,
            )

        try:
            batch.execute()
        except Exception as e:
            raise SourceFetchError(f"Batch request failed: {e}") from e

        missing = [msg_id for msg_id in ids if msg_id not in responses]
        if missing:
            first = missing[0]
            detail = errors.get(first, "no response")
            logger.error(f"Failed to fetch {len(missing)} of {len(ids)} messages")
            raise SourceFetchError(
                f"Failed to fetch {len(missing)} of {len(ids)} messages "
                f"(first: {first}: {detail})"
            )

        logger.debug(f"Batch fetched {len(responses)} messages")
        return responses

    @staticmethod
    def _to_message(msg_id: str, raw: dict[str, Any]) -> Message:
        payload = raw.get("payload") or {}
        headers = {
            h.get("name", "").lower(): h.get("value", "")
            for h in payload.get("headers", [])
        }
        return Message(
            id=msg_id,
            thread_id=raw.get("threadId", ""),
            date=headers.get("date", ""),
            sender=headers.get("from", ""),
            subject=headers.get("subject", ""),
            # Gmail snippets are HTML-escaped
            snippet=html.unescape(raw.get("snippet", "")),
            internal_date=_parse_internal_date(raw.get("internalDate")),
        )
