"""LLM client for Ollama integration."""

from __future__ import annotations

import json
import logging
import math
import re
import subprocess
import time
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gmail_analyzer.exceptions import (
    InferenceCallFailed,
    ServiceStartFailed,
    ServiceStartTimeout,
    UnparseableResponse,
)
from gmail_analyzer.models import Message, utc_now_iso

if TYPE_CHECKING:
    from gmail_analyzer.config import OllamaConfig

logger = logging.getLogger(__name__)

# First brace-delimited block, shortest match
_JSON_OBJECT_RE = re.compile(r"\{.*?\}", re.DOTALL)


class ServiceState(str, Enum):
    """Availability of the local inference service."""

    UNKNOWN = "unknown"
    DOWN = "down"
    STARTING = "starting"
    RUNNING = "running"


class SpamAnalysis(BaseModel):
    """LLM spam verdict output schema."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_spam: bool = Field(alias="isSpam")
    summary: str = ""
    sender: str | None = None
    subject: str | None = None
    confidence: int | None = None  # 0-100
    timestamp: str | None = None

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            value = value.strip().rstrip("%")
        if not isinstance(value, (int, float, str)):
            raise ValueError(f"confidence must be a number, got {type(value).__name__}")
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"confidence must be finite, got {number}")
        # Some models answer on a 0.0-1.0 scale
        if 0 < number < 1:
            number *= 100
        return max(0, min(100, round(number)))

    @field_validator("sender", "subject", "timestamp", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)


SPAM_PROMPT_TEMPLATE = """Given the following email:
From: {sender}
Subject: {subject}
Content: {content}

Analyze the email and return ONLY a valid JSON object in the following format:
{{
  "isSpam": true/false,
  "summary": "...",
  "sender": "...",
  "subject": "...",
  "confidence": number (0-100),
  "timestamp": "{timestamp}"
}}

Guidelines for classification:
- Mark "isSpam": true ONLY if the email clearly shows characteristics of spam, scams, phishing, fake job offers, or bulk marketing.
- DO NOT mark legitimate professional or recruiting emails as spam, especially if they include proper names, company details, or job-related context from known platforms like LinkedIn.
- Evaluate tone, structure, sender authenticity, and context to determine legitimacy.
- Use "confidence" to reflect how certain you are about the classification (e.g., 90+ for clear cases, 60-80 for uncertain).
- Always respond with a single valid JSON object and nothing else."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object.

    The reply is first parsed as-is. If that fails, the first ``{...}``
    block in the text is parsed instead, since models sometimes wrap the
    object in prose.

    Raises:
        UnparseableResponse: Neither attempt produced a JSON object.
    """
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except (json.JSONDecodeError, TypeError):
        pass

    match = _JSON_OBJECT_RE.search(text or "")
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise UnparseableResponse(f"Failed to parse Ollama JSON output: {e}") from e
        if isinstance(data, dict):
            return data

    raise UnparseableResponse("Failed to parse Ollama JSON output: no JSON object found")


class OllamaClient:
    """Client for the Ollama HTTP API that also keeps the service alive.

    The service is probed once per client; when it is down the client spawns
    it with the configured start command and polls until it answers. Once
    confirmed running it is not probed again.
    """

    def __init__(self, config: OllamaConfig, transport: httpx.BaseTransport | None = None):
        """Initialize the LLM client."""
        self.config = config
        self.state = ServiceState.UNKNOWN
        self.process: subprocess.Popen | None = None
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client. A spawned service is left running."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> OllamaClient:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        """Probe the service with a short GET on /api/tags."""
        try:
            response = self._get_client().get(
                "/api/tags", timeout=self.config.probe_timeout
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Ollama liveness probe failed: {e}")
            return False

    def list_models(self) -> list[str]:
        """List available models."""
        try:
            response = self._get_client().get(
                "/api/tags", timeout=self.config.probe_timeout
            )
            if response.status_code == 200:
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to list models: {e}")
        return []

    def start_service(self) -> subprocess.Popen:
        """Spawn the inference service in its own session."""
        command = self.config.start_command
        logger.debug(f"Starting Ollama: {' '.join(command)}")
        try:
            return subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ServiceStartFailed(f"Could not run {command[0]!r}: {e}") from e

    def wait_until_ready(self) -> None:
        """Poll liveness until the service answers or the start timeout passes."""
        deadline = time.monotonic() + self.config.start_timeout
        while True:
            if self.is_running():
                return

            if self.process is not None and self.process.poll() is not None:
                raise ServiceStartFailed(
                    f"Ollama exited with code {self.process.returncode} during startup"
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ServiceStartTimeout(
                    f"Ollama did not start within {self.config.start_timeout:g}s"
                )
            time.sleep(min(self.config.poll_interval, remaining))

    def ensure_running(self) -> ServiceState:
        """Drive the availability state machine to RUNNING.

        Raises:
            ServiceStartFailed: The service is down and could not be started.
            ServiceStartTimeout: A started service never became ready.
        """
        if self.state == ServiceState.RUNNING:
            return self.state

        if self.is_running():
            logger.info("Ollama already running")
            self.state = ServiceState.RUNNING
            return self.state

        self.state = ServiceState.DOWN
        if not self.config.auto_start:
            self.state = ServiceState.UNKNOWN
            raise ServiceStartFailed(
                f"Ollama not reachable at {self.config.base_url} and auto start is disabled"
            )

        try:
            # Reuse our own process if it is still booting
            if self.process is None or self.process.poll() is not None:
                logger.info("Ollama not running, starting server...")
                self.process = self.start_service()

            self.state = ServiceState.STARTING
            self.wait_until_ready()
        except ServiceStartFailed:
            self.state = ServiceState.UNKNOWN
            raise

        logger.info("Ollama is now running")
        self.state = ServiceState.RUNNING
        return self.state

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def build_prompt(self, message: Message) -> str:
        """Build the spam analysis prompt for a message."""
        return SPAM_PROMPT_TEMPLATE.format(
            sender=message.sender,
            subject=message.subject,
            content=message.snippet[: self.config.content_chars],
            timestamp=utc_now_iso(),
        )

    def generate(self, prompt: str) -> str:
        """Send a single non-streaming generate request and return its text."""
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
        }

        logger.debug(f"Calling Ollama API with model {self.config.model}")
        try:
            response = self._get_client().post("/api/generate", json=payload)
        except httpx.TimeoutException as e:
            raise InferenceCallFailed("Ollama request timed out") from e
        except httpx.HTTPError as e:
            raise InferenceCallFailed(f"Ollama request failed: {e}") from e

        if not response.is_success:
            raise InferenceCallFailed(
                f"Ollama API call failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise InferenceCallFailed(f"Ollama returned a non-JSON body: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise InferenceCallFailed("Ollama response missing 'response' field")
        return text

    def classify(self, message: Message) -> SpamAnalysis:
        """Classify a message with the LLM.

        Raises:
            InferenceError: Any failure of the start sequence, the call, or
                the reply parsing.
        """
        self.ensure_running()
        raw_response = self.generate(self.build_prompt(message))
        data = extract_json_object(raw_response)
        try:
            return SpamAnalysis.model_validate(data)
        except ValidationError as e:
            raise UnparseableResponse(f"Invalid response format: {e}") from e
