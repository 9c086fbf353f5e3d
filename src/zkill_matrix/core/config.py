"""
zkill-matrix Centralized Configuration

Provides validated, type-safe access to bot settings using Pydantic Settings.
Values come from (highest priority first) the JSON config file, ZKILL_*
environment variables, and the project .env file.

Usage:
    from zkill_matrix.core.config import load_settings

    settings = load_settings("config.json")
    print(settings.queue_id)

Config file (camelCase keys, as written by operators):
    {
        "watchedIds": [99000001],
        "matrix": {
            "homeserverUrl": "https://matrix.org",
            "accessToken": "syt_...",
            "roomId": "!abc:matrix.org"
        },
        "userAgent": "zkill-matrix/1.0 (ops@example.com)",
        "queueId": "my-queue"
    }

Environment Variables:
    ZKILL_CONFIG: Path to the JSON config file (default: config.json)
    ZKILL_WATCHED_IDS: JSON list of corporation/alliance IDs
    ZKILL_MATRIX__HOMESERVER_URL / __ACCESS_TOKEN / __ROOM_ID: Matrix settings
    ZKILL_USER_AGENT: Outbound User-Agent (must include a contact email)
    ZKILL_QUEUE_ID: RedisQ queue identifier
    ZKILL_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ZKILL_LOG_JSON: Output logs as JSON
    ZKILL_HEALTH_HOST / ZKILL_HEALTH_PORT: Health endpoint bind address
"""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    ESI_BASE_URL,
    IDLE_DELAY_SECONDS,
    REDISQ_URL,
)

DEFAULT_CONFIG_PATH = Path("config.json")

USER_AGENT_PATTERN = re.compile(r"^.+\(.+@.+\)$")


class SettingsError(Exception):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return "\n".join([self.message, *self.errors])


def _default_queue_id() -> str:
    return f"zkill-matrix-{uuid.uuid4().hex[:8]}"


class MatrixSettings(BaseModel):
    """Matrix homeserver connection details."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    homeserver_url: HttpUrl = Field(description="Matrix homeserver URL")
    access_token: str = Field(min_length=1, description="Matrix access token")
    room_id: str = Field(min_length=1, description="Matrix room ID to post messages to")

    @property
    def base_url(self) -> str:
        """Homeserver URL without trailing slash."""
        return str(self.homeserver_url).rstrip("/")


class BotSettings(BaseSettings):
    """
    Bot configuration settings with validation.

    Environment variables are loaded with the ZKILL_ prefix; nested Matrix
    settings use a double underscore (ZKILL_MATRIX__ROOM_ID).
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Pipeline
    # =========================================================================

    watched_ids: list[int] = Field(
        default_factory=list,
        description="Corporation or alliance IDs to monitor. Empty means all kills.",
    )

    matrix: MatrixSettings

    user_agent: str = Field(
        min_length=5,
        description="User-Agent for ESI and RedisQ requests, with contact email",
    )

    queue_id: str = Field(
        default_factory=_default_queue_id,
        min_length=1,
        description="Unique identifier for the RedisQ queue",
    )

    # =========================================================================
    # Endpoints & Timing
    # =========================================================================

    redisq_url: str = REDISQ_URL
    esi_base_url: str = ESI_BASE_URL
    idle_delay_seconds: float = Field(default=IDLE_DELAY_SECONDS, ge=0)
    backoff_base_seconds: float = Field(default=BACKOFF_BASE_SECONDS, ge=0)
    backoff_max_seconds: float = Field(default=BACKOFF_MAX_SECONDS, ge=0)

    # =========================================================================
    # Logging & Health
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = False

    health_host: str = "0.0.0.0"
    health_port: int = Field(default=8080, ge=0, le=65535)

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("user_agent")
    @classmethod
    def require_contact(cls, v: str) -> str:
        """ESI asks for a way to reach the operator."""
        if not USER_AGENT_PATTERN.match(v):
            raise ValueError("User agent must include contact email in parentheses")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def watchlist(self) -> frozenset[int]:
        """Immutable watchlist; empty means every killmail is relevant."""
        return frozenset(self.watched_ids)

    @property
    def log_level_int(self) -> int:
        """Log level as logging constant."""
        return getattr(logging, self.log_level)


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SettingsError(f"Config file {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise SettingsError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise SettingsError(f"Config file {path} must contain a JSON object")

    # Top-level keys are camelCase in config files; nested Matrix keys are
    # handled by MatrixSettings aliases.
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        snake = re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
        normalized[snake if snake in BotSettings.model_fields else key] = value
    return normalized


def load_settings(path: str | Path | None = None) -> BotSettings:
    """
    Load and validate bot settings.

    Args:
        path: JSON config file. Defaults to $ZKILL_CONFIG or ./config.json.
              A missing default file is not an error (env-only setup); a
              missing explicit file is.

    Returns:
        Validated BotSettings

    Raises:
        SettingsError: With one "- field: message" line per problem
    """
    explicit = path is not None or "ZKILL_CONFIG" in os.environ
    config_path = Path(path or os.environ.get("ZKILL_CONFIG", DEFAULT_CONFIG_PATH))

    file_values: dict[str, Any] = {}
    if config_path.exists():
        file_values = _read_config_file(config_path)
    elif explicit:
        raise SettingsError(f"Config file not found: {config_path}")

    try:
        return BotSettings(**file_values)
    except ValidationError as e:
        errors = [
            f"- {'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise SettingsError("Configuration validation failed:", errors) from e
