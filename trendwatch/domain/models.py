"""Domain models for the trending-ticker watcher.

All models are immutable; a new Credential is issued for every session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr

ItemId = str


def _now_utc() -> datetime:
    return datetime.now(UTC)


class Credential(BaseModel):
    """Short-lived bearer token and its validity window."""

    model_config = ConfigDict(frozen=True)

    token: SecretStr = Field(..., description="Opaque access token")
    expires_in_seconds: int = Field(..., ge=0, description="Token time-to-live")
    issued_at: datetime = Field(
        default_factory=_now_utc, description="Time the token was obtained"
    )

    def bearer(self) -> str:
        """Return the value for an ``Authorization`` header."""
        return f"Bearer {self.token.get_secret_value()}"

    def __str__(self) -> str:
        """Return string representation without the token."""
        return f"Credential(expires_in={self.expires_in_seconds}s)"


class SessionState(Enum):
    """Handshake state of one feed session."""

    CONNECTING = "connecting"
    AWAITING_ACK = "awaiting_ack"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """Summary handed back to the supervisor when a session ends."""

    reason: str
    code: int | None = None
    subscribed: bool = False
    notified: int = 0
    error: str | None = None
