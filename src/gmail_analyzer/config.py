"""Configuration management for Gmail Analyzer."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_SENDER_PATTERNS = [
    # Automated or bulk sender prefixes
    "noreply@",
    "no-reply@",
    "donotreply@",
    "mailer-daemon@",
    "auto@",
    "support@",
    "service@",
    "newsletter@",
    "promo@",
    "offers@",
    "marketing@",
    # High-risk top-level domains
    ".ru",
    ".xyz",
    ".top",
    ".click",
    ".online",
    "jobs-listings",
]

DEFAULT_SUBJECT_PATTERNS = [
    "limited time offer",
    "act now",
    "claim your reward",
    "click here to",
    "important security alert",
]

DEFAULT_KEYWORD_PATTERNS = [
    "win a",
    "free gift",
    "limited offer",
    "exclusive deal",
    "100% free",
    "no cost",
    "trial offer",
    "work from home",
    "easy money",
    "get rich",
    "crypto investment",
    "forex trading",
    "loan approval",
    "debt relief",
    "unsecured loan",
    "click below",
    "unsubscribe now",
    "won a prize",
    "claim your prize",
]


class OllamaConfig(BaseModel):
    """Ollama inference service configuration."""

    base_url: str = "http://localhost:11434"
    model: str = "gemma3"
    timeout: float = Field(default=60.0, description="Timeout in seconds for a generate call")
    probe_timeout: float = Field(default=2.0, description="Timeout in seconds for a liveness probe")
    poll_interval: float = Field(default=1.0, description="Seconds between liveness polls while starting")
    start_timeout: float = Field(default=12.0, description="Maximum seconds to wait for a started service")
    start_command: list[str] = Field(default_factory=lambda: ["ollama", "serve"])
    auto_start: bool = Field(default=True, description="Spawn the service when it is not running")
    content_chars: int = Field(default=1000, description="Maximum snippet characters sent to the model")


class RulesConfig(BaseModel):
    """Substring patterns for the rule-based spam stage."""

    senders: list[str] = Field(default_factory=lambda: list(DEFAULT_SENDER_PATTERNS))
    subjects: list[str] = Field(default_factory=lambda: list(DEFAULT_SUBJECT_PATTERNS))
    keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORD_PATTERNS))

    @field_validator("senders", "subjects", "keywords")
    @classmethod
    def _lowercase(cls, patterns: list[str]) -> list[str]:
        # Matching is done against lowercased fields
        return [p.lower() for p in patterns if p]


class GmailConfig(BaseModel):
    """Gmail API configuration."""

    token_path: str = "tokens.json"
    user_id: str = "me"
    page_size: int = 100
    num_retries: int = 3
    label: str = "inbox"
    exclude_labels: list[str] = Field(default_factory=lambda: ["spam", "trash"])


class StateConfig(BaseModel):
    """Locations of the watermark and the result snapshot."""

    watermark_path: str = "gmail-state.json"
    results_path: str = "analysis-latest.json"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_file: str | None = None
    audit_file: str | None = "audit.jsonl"


class Config(BaseModel):
    """Main configuration."""

    ollama: OllamaConfig = Field(default_factory=lambda: OllamaConfig())
    rules: RulesConfig = Field(default_factory=lambda: RulesConfig())
    gmail: GmailConfig = Field(default_factory=lambda: GmailConfig())
    state: StateConfig = Field(default_factory=lambda: StateConfig())
    logging: LoggingConfig = Field(default_factory=lambda: LoggingConfig())


def load_config(config_path: str | Path) -> Config:
    """Load configuration from YAML file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return Config(**(data or {}))
