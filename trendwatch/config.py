"""Application configuration module."""

from __future__ import annotations

import os
from typing import Annotated, Any, ClassVar

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_MASK_SHORT_LENGTH = 4
_MASK_LONG_THRESHOLD = 8
_MASK_MIN_PREFIX = 2
_MASK_SUFFIX_LENGTH = 2

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118.0 Safari/537.36"
)


def _as_secret(value: SecretStr | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return str(value)


def _mask_secret(value: str | None) -> str | None:
    if value is None or not value:
        return value
    if len(value) <= _MASK_SHORT_LENGTH:
        return "***"
    prefix_len = (
        _MASK_SHORT_LENGTH
        if len(value) > _MASK_LONG_THRESHOLD
        else max(_MASK_MIN_PREFIX, len(value) // 2)
    )
    return f"{value[:prefix_len]}...{value[-_MASK_SUFFIX_LENGTH:]}"


def _has_value(value: SecretStr | str | None) -> bool:
    raw = _as_secret(value)
    return bool(raw and raw.strip())


class ChoiceError(ValueError):
    """Raised when a setting is outside its allowed values."""

    def __init__(self, field: str, allowed: set[str], provided: str) -> None:
        """Record allowed values and provided value for error reporting."""
        self.field = field
        self.allowed = allowed
        self.provided = provided
        message = (
            f"invalid_{field} allowed={sorted(allowed)} provided={provided.lower()}"
        )
        super().__init__(message)


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    _use_env_file = "PYTEST_CURRENT_TEST" not in os.environ
    model_config = SettingsConfigDict(
        env_file=(".env" if _use_env_file else None),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    _SECRET_FIELDS: ClassVar[tuple[str, ...]] = (
        "reddit_client_secret",
        "reddit_refresh_token",  # pragma: allowlist secret
        "reddit_session",
        "email_app_password",  # pragma: allowlist secret
    )
    _REQUIRED_ENV_MAP: ClassVar[dict[str, str]] = {
        "reddit_client_id": "REDDIT_CLIENT_ID",
        "reddit_client_secret": "REDDIT_CLIENT_SECRET",  # pragma: allowlist secret
        "reddit_refresh_token": "REDDIT_REFRESH_TOKEN",
    }
    _EMAIL_ENV_MAP: ClassVar[dict[str, str]] = {
        "sender_email": "SENDER_EMAIL",
        "email_app_password": "EMAIL_APP_PASSWORD",  # pragma: allowlist secret
    }

    # Application settings
    app_name: str = Field(default="trendwatch", description="Application name")
    environment: str = Field(default="development", description="Environment name")

    # Reddit OAuth client
    reddit_client_id: str | None = Field(
        default=None,
        description="OAuth client id",
        validation_alias=AliasChoices("REDDIT_CLIENT_ID", "CLIENT_ID"),
    )
    reddit_client_secret: SecretStr | None = Field(
        default=None,
        description="OAuth client secret",
        validation_alias=AliasChoices("REDDIT_CLIENT_SECRET", "CLIENT_SECRET"),
    )
    reddit_refresh_token: SecretStr | None = Field(
        default=None,
        description="Long-lived refresh token",
        validation_alias=AliasChoices("REDDIT_REFRESH_TOKEN", "REFRESH_TOKEN"),
    )
    token_url: str = Field(
        default="https://www.reddit.com/api/v1/access_token",
        description="Token exchange endpoint",
        validation_alias=AliasChoices("REDDIT_TOKEN_URL", "TOKEN_URL"),
    )
    token_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout (seconds) for the token exchange",
        gt=0,
        le=120.0,
    )

    # Realtime feed connection
    feed_url: str = Field(
        default="wss://gql-realtime.reddit.com/query",
        description="Realtime GraphQL websocket endpoint",
        validation_alias=AliasChoices("FEED_URL"),
    )
    feed_origin: str = Field(
        default="https://www.reddit.com",
        description="Origin header sent on the websocket handshake",
        validation_alias=AliasChoices("FEED_ORIGIN"),
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent for the token exchange and websocket handshake",
        validation_alias=AliasChoices("USER_AGENT"),
    )
    reddit_session: SecretStr | None = Field(
        default=None,
        description="Optional reddit_session cookie",
        validation_alias=AliasChoices("REDDIT_SESSION"),
    )
    reddit_loid: str | None = Field(
        default=None,
        description="Optional loid cookie",
        validation_alias=AliasChoices("REDDIT_LOID", "LOID"),
    )
    ws_open_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout (seconds) for the websocket opening handshake",
        gt=0,
        le=120.0,
    )

    # Session lifecycle
    renewal_margin_seconds: float = Field(
        default=60.0,
        description="Close the session this long before the token expires",
        ge=0,
    )
    reconnect_delay_seconds: float = Field(
        default=5.0,
        description="Delay before reconnecting after a session ends",
        ge=0,
        validation_alias=AliasChoices("RECONNECT_DELAY_SECONDS"),
    )
    reconnect_max_delay_seconds: float = Field(
        default=5.0,
        description="Upper bound for the reconnect delay",
        ge=0,
        validation_alias=AliasChoices("RECONNECT_MAX_DELAY_SECONDS"),
    )
    reconnect_multiplier: float = Field(
        default=1.0,
        description="Backoff multiplier (1.0 keeps a fixed delay)",
        ge=1.0,
        validation_alias=AliasChoices("RECONNECT_MULTIPLIER"),
    )
    notify_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound on one notification delivery",
        gt=0,
    )

    # Notification delivery
    notifier_backend: str = Field(
        default="email",
        description="Notification backend (email|log)",
        validation_alias=AliasChoices("NOTIFIER_BACKEND"),
    )
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP server host")
    smtp_port: int = Field(
        default=465, description="SMTP-over-SSL port", ge=1, le=65535
    )
    sender_email: str | None = Field(
        default=None,
        description="Sender address and SMTP login",
        validation_alias=AliasChoices("SENDER_EMAIL"),
    )
    email_app_password: SecretStr | None = Field(
        default=None,
        description="SMTP application password",
        validation_alias=AliasChoices("EMAIL_APP_PASSWORD"),
    )
    receiver_emails: Annotated[tuple[str, ...], NoDecode] = Field(
        default_factory=tuple,
        description="Notification recipients",
        validation_alias=AliasChoices("RECEIVER_EMAILS", "RECEIVER_EMAIL"),
    )

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    # Metrics exporter
    enable_metrics: bool = Field(
        default=False,
        description="Expose Prometheus metrics over HTTP",
        validation_alias=AliasChoices("ENABLE_METRICS"),
    )
    metrics_host: str = Field(
        default="127.0.0.1",
        description="Bind host for the metrics exporter",
        validation_alias=AliasChoices("METRICS_HOST"),
    )
    metrics_port: int = Field(
        default=9100,
        description="Bind port for the metrics exporter",
        validation_alias=AliasChoices("METRICS_PORT"),
        ge=1,
        le=65535,
    )

    @field_validator("receiver_emails", mode="before")
    @classmethod
    def _split_receivers(cls, value: Any) -> Any:
        if value is None:
            return ()
        raw_values = [value] if isinstance(value, str) else list(value)
        receivers: list[str] = []
        for raw in raw_values:
            for part in str(raw).replace("\n", ",").split(","):
                address = part.strip()
                if address and address not in receivers:
                    receivers.append(address)
        return tuple(receivers)

    @model_validator(mode="after")
    def _validate_choices(self) -> AppSettings:
        self.notifier_backend = self._normalize_choice(
            "notifier_backend", self.notifier_backend, {"email", "log"}
        )
        self.log_format = self._normalize_choice(
            "log_format", self.log_format, {"json", "text"}
        )
        return self

    @staticmethod
    def _normalize_choice(field: str, value: str, allowed: set[str]) -> str:
        normalized = value.strip().lower()
        if normalized not in allowed:
            raise ChoiceError(field, allowed, value)
        return normalized

    def missing_required_fields(self) -> list[str]:
        """Return env names of unset settings the selected backends need."""
        required = dict(self._REQUIRED_ENV_MAP)
        if self.notifier_backend == "email":
            required.update(self._EMAIL_ENV_MAP)
        missing = [
            env_name
            for attr, env_name in required.items()
            if not _has_value(getattr(self, attr))
        ]
        if self.notifier_backend == "email" and not self.receiver_emails:
            missing.append("RECEIVER_EMAILS")
        return missing

    def session_cookie(self) -> str | None:
        """Return the Cookie header value for the configured session cookies."""
        parts: list[str] = []
        session = _as_secret(self.reddit_session)
        if session and session.strip():
            parts.append(f"reddit_session={session.strip()}")
        if self.reddit_loid and self.reddit_loid.strip():
            parts.append(f"loid={self.reddit_loid.strip()}")
        return "; ".join(parts) or None

    def to_dict_safe(self) -> dict[str, Any]:
        """Convert settings to dictionary with sensitive fields masked."""
        data = self.model_dump(mode="python")
        for field in self._SECRET_FIELDS:
            data[field] = _mask_secret(_as_secret(getattr(self, field)))
        return data


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
