"""Feed session controller.

One SessionController drives one connection through the handshake
state machine::

    CONNECTING -> AWAITING_ACK -> SUBSCRIBED -> CLOSED

Inbound frames are handled strictly one at a time by a single dispatch
method keyed by frame kind; each handler checks the current state, so a
second ``connection_ack`` can never produce a second subscribe.

The feed has no in-band re-authentication, so credential renewal is a
deliberate early close: a timer due ``renewal_margin_seconds`` before the
token expires closes the connection and the supervisor reconnects with a
fresh token.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging

from trendwatch.application import protocol
from trendwatch.application.dedup import SeenSet
from trendwatch.application.observability import FeedMetricsExporter
from trendwatch.application.protocol import FeedChannel, FrameKind, InboundFrame
from trendwatch.domain.errors import (
    ProtocolParseError,
    TransportClosedError,
    TransportError,
)
from trendwatch.domain.models import Credential, SessionOutcome, SessionState
from trendwatch.domain.ports import FeedTransportPort, NotifierPort

logger = logging.getLogger(__name__)

CLOSE_REASON_RENEWAL = "credential_renewal"
CLOSE_REASON_SERVER = "server_closed"
CLOSE_REASON_TRANSPORT_CLOSED = "transport_closed"
CLOSE_REASON_TRANSPORT_ERROR = "transport_error"


class SessionReuseError(RuntimeError):
    """Raised when run() is called twice on the same controller."""

    def __init__(self) -> None:
        """Initialize session reuse error."""
        super().__init__("SessionController instances run exactly once")


@dataclass(slots=True)
class SessionOptions:
    """Per-session tunables shared by every connection the supervisor opens."""

    renewal_margin_seconds: float = 60.0
    notify_timeout_seconds: float | None = 30.0
    channel: FeedChannel = protocol.DEFAULT_CHANNEL


class SessionController:
    """Run the handshake/subscribe protocol over one feed connection."""

    def __init__(
        self,
        transport: FeedTransportPort,
        seen: SeenSet,
        notifier: NotifierPort,
        *,
        options: SessionOptions | None = None,
        metrics: FeedMetricsExporter | None = None,
    ) -> None:
        """Bind the controller to a transport and the shared seen set."""
        self._transport = transport
        self._seen = seen
        self._notifier = notifier
        self._options = options or SessionOptions()
        self._metrics = metrics
        self._state = SessionState.CONNECTING
        self._started = False
        self._renewal_handle: asyncio.TimerHandle | None = None
        self._renewal_close: asyncio.Task[None] | None = None
        self._close_reason: str | None = None
        self._subscribed = False
        self._notified = 0
        self._handlers: dict[FrameKind, Callable[[InboundFrame], Awaitable[None]]] = {
            FrameKind.PING: self._on_ping,
            FrameKind.CONNECTION_ACK: self._on_ack,
            FrameKind.NEXT: self._on_next,
            FrameKind.ERROR: self._on_error,
            FrameKind.COMPLETE: self._on_complete,
        }

    @property
    def state(self) -> SessionState:
        """Return current handshake state."""
        return self._state

    @property
    def renewal_due_at(self) -> float | None:
        """Loop time at which the renewal close fires, or None when not armed."""
        if self._renewal_handle is None:
            return None
        return self._renewal_handle.when()

    async def run(self, credential: Credential) -> SessionOutcome:
        """Open the connection and process frames until it closes.

        Transport failures end the session and are reported in the
        returned outcome instead of being raised.
        """
        if self._started:
            raise SessionReuseError
        self._started = True
        self._schedule_renewal(credential)

        reason = CLOSE_REASON_SERVER
        code: int | None = None
        error: str | None = None
        try:
            await self._transport.open()
            if self._close_reason is not None:
                # renewal fired while the connection was still opening
                await self._transport.close()
            else:
                await self._on_open(credential)
                async for raw in self._transport.frames():
                    await self.handle_frame(raw)
        except TransportClosedError as exc:
            reason, code, error = CLOSE_REASON_TRANSPORT_CLOSED, exc.code, str(exc)
        except TransportError as exc:
            reason, error = CLOSE_REASON_TRANSPORT_ERROR, str(exc)
        finally:
            await self.close(reason)
            if self._renewal_close is not None:
                await self._renewal_close

        if code is None:
            code = self._transport.close_code
        outcome = SessionOutcome(
            reason=self._close_reason or reason,
            code=code,
            subscribed=self._subscribed,
            notified=self._notified,
            error=error,
        )
        logger.info(
            "session_closed",
            extra={
                "reason": outcome.reason,
                "code": outcome.code,
                "subscribed": outcome.subscribed,
                "notified": outcome.notified,
            },
        )
        return outcome

    async def close(self, reason: str = "closed") -> None:
        """Close the session once; later calls are no-ops.

        The renewal timer is cancelled before the transport is closed so it
        can never fire against a later session.
        """
        if self._close_reason is not None:
            return
        self._close_reason = reason
        self._cancel_renewal()
        try:
            await self._transport.close()
        finally:
            self._set_state(SessionState.CLOSED)

    async def handle_frame(self, raw: str | bytes) -> None:
        """Decode and dispatch one inbound frame.

        Malformed or unknown frames are logged and dropped without a state
        change.
        """
        if self._state is SessionState.CLOSED:
            self._drop("after_close")
            return
        try:
            frame = protocol.parse_frame(raw)
        except ProtocolParseError as exc:
            self._drop("malformed", error=str(exc))
            return

        handler = self._handlers.get(frame.kind)
        if handler is None:
            self._drop("unrecognized", frame_type=frame.type)
            return
        await handler(frame)

    async def _on_open(self, credential: Credential) -> None:
        logger.info("socket_open")
        self._set_state(SessionState.AWAITING_ACK)
        await self._transport.send(protocol.connection_init(credential))

    async def _on_ping(self, _frame: InboundFrame) -> None:
        logger.debug("received ping, sending pong")
        await self._transport.send(protocol.pong())

    async def _on_ack(self, _frame: InboundFrame) -> None:
        if self._state is not SessionState.AWAITING_ACK:
            self._drop("unexpected_ack", state=self._state.value)
            return
        self._set_state(SessionState.SUBSCRIBED)
        self._subscribed = True
        await self._transport.send(protocol.subscribe(self._options.channel))
        logger.info(
            "subscription_requested",
            extra={"subscription_id": protocol.SUBSCRIPTION_ID},
        )

    async def _on_next(self, frame: InboundFrame) -> None:
        if self._state is not SessionState.SUBSCRIBED:
            self._drop("not_subscribed", state=self._state.value)
            return
        if frame.id is not None and frame.id != protocol.SUBSCRIPTION_ID:
            self._drop("unknown_subscription", subscription_id=frame.id)
            return
        try:
            item_ids = protocol.extract_item_ids(frame)
        except ProtocolParseError as exc:
            self._drop("malformed_payload", error=str(exc))
            return

        new_items = 0
        for item_id in item_ids:
            if not self._seen.claim(item_id):
                continue
            new_items += 1
            await self._notify(item_id)
        if self._metrics is not None:
            self._metrics.observe_seen(len(self._seen))
        if not new_items:
            logger.info("no new tickers", extra={"received": len(item_ids)})

    async def _on_error(self, frame: InboundFrame) -> None:
        logger.warning(
            "feed_error_frame",
            extra={"subscription_id": frame.id, "payload": frame.payload},
        )

    async def _on_complete(self, frame: InboundFrame) -> None:
        logger.info("subscription_complete", extra={"subscription_id": frame.id})

    async def _notify(self, item_id: str) -> None:
        logger.info("NEW: %s", item_id, extra={"item_id": item_id})
        timeout = self._options.notify_timeout_seconds
        try:
            if timeout is not None and timeout > 0:
                await asyncio.wait_for(self._notifier.send(item_id), timeout=timeout)
            else:
                await self._notifier.send(item_id)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "notification_failed",
                extra={"item_id": item_id, "error": str(exc) or type(exc).__name__},
            )
            if self._metrics is not None:
                self._metrics.record_notification_failure()
            return
        self._notified += 1
        if self._metrics is not None:
            self._metrics.record_notified()

    def _schedule_renewal(self, credential: Credential) -> None:
        delay = max(
            credential.expires_in_seconds - self._options.renewal_margin_seconds, 0.0
        )
        if delay == 0:
            logger.warning(
                "credential_expires_within_margin",
                extra={
                    "expires_in": credential.expires_in_seconds,
                    "margin_seconds": self._options.renewal_margin_seconds,
                },
            )
        loop = asyncio.get_running_loop()
        self._renewal_handle = loop.call_later(delay, self._on_renewal_due)
        logger.debug("renewal_scheduled", extra={"delay_seconds": delay})

    def _on_renewal_due(self) -> None:
        self._renewal_handle = None
        if self._close_reason is not None:
            return
        logger.info("⟳ token refresh")
        self._renewal_close = asyncio.ensure_future(self.close(CLOSE_REASON_RENEWAL))

    def _cancel_renewal(self) -> None:
        if self._renewal_handle is not None:
            self._renewal_handle.cancel()
            self._renewal_handle = None

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug(
            "session_state", extra={"from": self._state.value, "to": state.value}
        )
        self._state = state
        if self._metrics is not None:
            self._metrics.observe_state(state)

    def _drop(self, reason: str, **details: object) -> None:
        logger.warning("frame_dropped", extra={"reason": reason, **details})
        if self._metrics is not None:
            self._metrics.record_dropped_frame(reason)
