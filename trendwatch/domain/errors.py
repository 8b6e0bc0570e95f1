"""Error taxonomy shared by the session core and its adapters."""

from __future__ import annotations


class AuthError(RuntimeError):
    """Raised when the refresh-token exchange does not yield a credential."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Record the HTTP status (if any) alongside the message."""
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} status={status_code}"
        super().__init__(message)


class ProtocolParseError(ValueError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(self, detail: str) -> None:
        """Initialize with a short description of what was wrong."""
        self.detail = detail
        super().__init__(f"malformed_frame {detail}")


class TransportError(ConnectionError):
    """Raised when the feed connection cannot be used."""


class TransportClosedError(TransportError):
    """Raised when the feed connection closes abnormally."""

    def __init__(self, code: int | None = None, reason: str = "") -> None:
        """Capture close code and reason reported by the peer."""
        self.code = code
        self.reason = reason
        super().__init__(f"connection_closed code={code} reason={reason or '-'}")


class NotificationError(RuntimeError):
    """Raised when a notification could not be delivered."""

    def __init__(self, item_id: str, detail: str) -> None:
        """Record the item the delivery was for."""
        self.item_id = item_id
        super().__init__(f"notification_failed item={item_id} {detail}")
