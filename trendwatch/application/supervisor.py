"""Outer control loop: credential, session, delay, repeat."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import contextlib
from dataclasses import dataclass
import logging

from trendwatch.application.dedup import SeenSet
from trendwatch.application.observability import FeedMetricsExporter
from trendwatch.application.session import SessionController, SessionOptions
from trendwatch.domain.errors import AuthError
from trendwatch.domain.models import SessionOutcome
from trendwatch.domain.ports import (
    CredentialProviderPort,
    FeedTransportPort,
    NotifierPort,
)

logger = logging.getLogger(__name__)

_MAX_BACKOFF_EXPONENT = 32


@dataclass(slots=True)
class BackoffPolicy:
    """Reconnect delay policy; fixed by default, exponential when multiplier > 1."""

    initial_delay: float = 5.0
    max_delay: float = 5.0
    multiplier: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Return the delay before reconnect ``attempt`` (1-based)."""
        exponent = min(max(attempt - 1, 0), _MAX_BACKOFF_EXPONENT)
        delay = self.initial_delay * (max(self.multiplier, 1.0) ** exponent)
        cap = max(self.max_delay, self.initial_delay)
        return max(0.0, min(delay, cap))


class Supervisor:
    """Keep one feed session alive forever.

    Each iteration acquires a fresh credential, runs a new SessionController
    to completion and waits for the backoff delay. Credential failures and
    session failures are logged and retried; nothing here ends the loop
    except cancellation or the optional stop event used at shutdown.
    """

    def __init__(
        self,
        credentials: CredentialProviderPort,
        transport_factory: Callable[[], FeedTransportPort],
        notifier: NotifierPort,
        *,
        seen: SeenSet | None = None,
        backoff: BackoffPolicy | None = None,
        session_options: SessionOptions | None = None,
        metrics: FeedMetricsExporter | None = None,
    ) -> None:
        """Wire collaborators; ``seen`` is shared by every session."""
        self._credentials = credentials
        self._transport_factory = transport_factory
        self._notifier = notifier
        self.seen = seen if seen is not None else SeenSet()
        self.backoff = backoff or BackoffPolicy()
        self._session_options = session_options or SessionOptions()
        self._metrics = metrics
        self._consecutive_failures = 0
        self.sessions_started = 0
        self.last_outcome: SessionOutcome | None = None

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Run sessions back to back until cancelled or ``stop`` is set."""
        stop_event = stop or asyncio.Event()
        logger.info(
            "supervisor_started",
            extra={
                "initial_delay": self.backoff.initial_delay,
                "max_delay": self.backoff.max_delay,
            },
        )
        while not stop_event.is_set():
            outcome = await self.run_once()
            if stop_event.is_set():
                break
            delay = self.next_delay(outcome)
            logger.info("reconnecting in %.1f s", delay, extra={"delay_seconds": delay})
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
        logger.info("supervisor_stopped", extra={"sessions": self.sessions_started})

    async def run_once(self) -> SessionOutcome | None:
        """Acquire a credential and run one session to completion.

        Returns:
            The session outcome, or None when no credential could be obtained

        """
        try:
            credential = await self._credentials.acquire()
        except AuthError as exc:
            logger.warning(
                "credential_acquire_failed",
                extra={"error": str(exc), "status_code": exc.status_code},
            )
            if self._metrics is not None:
                self._metrics.record_auth_failure()
            self.last_outcome = None
            return None
        logger.info(
            "credential_acquired", extra={"expires_in": credential.expires_in_seconds}
        )

        controller = SessionController(
            self._transport_factory(),
            self.seen,
            self._notifier,
            options=self._session_options,
            metrics=self._metrics,
        )
        self.sessions_started += 1
        try:
            outcome = await controller.run(credential)
        except Exception as exc:
            logger.exception("session_crashed", extra={"error": str(exc)})
            outcome = SessionOutcome(reason="session_crashed", error=str(exc))
        if self._metrics is not None:
            self._metrics.record_session_end(outcome.reason)
        self.last_outcome = outcome
        return outcome

    def next_delay(self, outcome: SessionOutcome | None) -> float:
        """Return reconnect delay, resetting backoff after a subscribed session."""
        if outcome is not None and outcome.subscribed:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        return self.backoff.delay_for(max(self._consecutive_failures, 1))
