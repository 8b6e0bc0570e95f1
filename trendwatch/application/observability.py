"""Prometheus observability helpers for the feed watcher."""

from __future__ import annotations

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

from trendwatch.domain.models import SessionState

logger = logging.getLogger(__name__)


class FeedMetricsExporter:
    """Wrap Prometheus objects for the session lifecycle."""

    def __init__(
        self,
        *,
        host: str = "127.0.0.1",
        port: int = 9100,
        registry: CollectorRegistry | None = None,
        start_http: bool = True,
    ) -> None:
        """Initialize exporter with provided networking parameters."""
        self._registry = registry or CollectorRegistry()
        self._sessions_counter = Counter(
            "trendwatch_sessions_total",
            "Feed sessions that ended, by outcome reason",
            ("outcome",),
            registry=self._registry,
        )
        self._state_gauge = Gauge(
            "trendwatch_session_state",
            "1 for the current state of the active feed session",
            ("state",),
            registry=self._registry,
        )
        self._notified_counter = Counter(
            "trendwatch_items_notified_total",
            "Items handed to the notifier",
            registry=self._registry,
        )
        self._notify_failures_counter = Counter(
            "trendwatch_notification_failures_total",
            "Notifier calls that raised or timed out",
            registry=self._registry,
        )
        self._dropped_counter = Counter(
            "trendwatch_frames_dropped_total",
            "Inbound frames that were logged and ignored",
            ("reason",),
            registry=self._registry,
        )
        self._auth_failures_counter = Counter(
            "trendwatch_auth_failures_total",
            "Failed refresh-token exchanges",
            registry=self._registry,
        )
        self._seen_gauge = Gauge(
            "trendwatch_seen_items",
            "Distinct items announced during this process lifetime",
            registry=self._registry,
        )

        if start_http:
            try:
                start_http_server(port, addr=host, registry=self._registry)
                logger.info(
                    "Prometheus metrics exporter online",
                    extra={"host": host, "port": port},
                )
            except OSError as exc:
                logger.warning(
                    "prometheus_exporter_start_failed",
                    extra={"host": host, "port": port, "error": str(exc)},
                )

    @property
    def registry(self) -> CollectorRegistry:
        """Return underlying collector registry (primarily for tests)."""
        return self._registry

    def observe_state(self, state: SessionState) -> None:
        """Flag ``state`` as the current session state."""
        for candidate in SessionState:
            self._state_gauge.labels(state=candidate.value).set(
                1 if candidate is state else 0
            )

    def record_session_end(self, outcome: str) -> None:
        """Count a finished session."""
        self._sessions_counter.labels(outcome=outcome).inc()

    def record_notified(self) -> None:
        """Count a delivered notification."""
        self._notified_counter.inc()

    def observe_seen(self, count: int) -> None:
        """Expose the size of the seen set."""
        self._seen_gauge.set(max(count, 0))

    def record_notification_failure(self) -> None:
        """Count a failed or timed-out notification."""
        self._notify_failures_counter.inc()

    def record_dropped_frame(self, reason: str) -> None:
        """Count an inbound frame that was ignored."""
        self._dropped_counter.labels(reason=reason).inc()

    def record_auth_failure(self) -> None:
        """Count a failed credential acquisition."""
        self._auth_failures_counter.inc()

    def scrape(self) -> bytes:
        """Return raw exposition format bytes for assertions."""
        return generate_latest(self._registry)


__all__ = ["FeedMetricsExporter"]
