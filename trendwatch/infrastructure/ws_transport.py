"""Websocket adapter for the realtime GraphQL feed."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
import logging
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    WebSocketException,
)
from websockets.typing import Subprotocol

from trendwatch.application.protocol import SUBPROTOCOL
from trendwatch.domain.errors import TransportClosedError, TransportError
from trendwatch.domain.ports import FeedTransportPort

if TYPE_CHECKING:
    from trendwatch.config import AppSettings

logger = logging.getLogger(__name__)


class NotOpenError(TransportError):
    """Raised when the connection is used before open()."""

    def __init__(self) -> None:
        """Initialize not-open error."""
        super().__init__("feed connection is not open")


class WebSocketFeedTransport(FeedTransportPort):
    """One websocket connection to the feed, speaking graphql-transport-ws."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        connect_fn: Callable[..., Any] = connect,
    ) -> None:
        """Capture connection parameters; nothing is opened yet."""
        self._url = settings.feed_url
        self._headers = build_handshake_headers(settings)
        self._user_agent = settings.user_agent
        self._open_timeout = settings.ws_open_timeout_seconds
        self._connect = connect_fn
        self._ws: ClientConnection | None = None

    async def open(self) -> None:
        """Perform the websocket handshake."""
        try:
            self._ws = await self._connect(
                self._url,
                subprotocols=[Subprotocol(SUBPROTOCOL)],
                additional_headers=self._headers,
                user_agent_header=self._user_agent,
                open_timeout=self._open_timeout,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise TransportError(
                f"connect_failed url={self._url} error={exc!r}"
            ) from exc
        logger.info(
            "feed_connected",
            extra={"url": self._url, "subprotocol": self._ws.subprotocol},
        )

    async def send(self, message: str) -> None:
        """Send one text frame."""
        ws = self._require()
        try:
            await ws.send(message)
        except ConnectionClosed as exc:
            raise TransportClosedError(ws.close_code, ws.close_reason or "") from exc

    async def frames(self) -> AsyncIterator[str | bytes]:
        """Yield frames until the peer or we close the connection."""
        ws = self._require()
        while True:
            try:
                message = await ws.recv()
            except ConnectionClosedOK:
                return
            except ConnectionClosed as exc:
                raise TransportClosedError(
                    ws.close_code, ws.close_reason or ""
                ) from exc
            yield message

    async def close(self) -> None:
        """Close the connection if it was opened."""
        if self._ws is not None:
            await self._ws.close()

    @property
    def close_code(self) -> int | None:
        """Close code received from the server, or None while open."""
        return self._ws.close_code if self._ws is not None else None

    @property
    def close_reason(self) -> str:
        """Close reason received from the server."""
        if self._ws is None:
            return ""
        return self._ws.close_reason or ""

    def _require(self) -> ClientConnection:
        if self._ws is None:
            raise NotOpenError
        return self._ws


def build_handshake_headers(settings: AppSettings) -> dict[str, str]:
    """Return extra handshake headers: Origin plus any session cookies."""
    headers = {"Origin": settings.feed_origin}
    cookie = settings.session_cookie()
    if cookie:
        headers["Cookie"] = cookie
    return headers
