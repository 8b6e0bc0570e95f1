"""Trending-ticker watcher entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys

from pythonjsonlogger.json import JsonFormatter

from trendwatch.application.observability import FeedMetricsExporter
from trendwatch.application.session import SessionOptions
from trendwatch.application.supervisor import BackoffPolicy, Supervisor
from trendwatch.config import AppSettings, get_settings
from trendwatch.infrastructure.email_notifier import create_notifier
from trendwatch.infrastructure.reddit_oauth import RedditTokenClient
from trendwatch.infrastructure.ws_transport import WebSocketFeedTransport


def setup_logging(settings: AppSettings) -> None:
    """Configure application logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if settings.log_format == "json":
        formatter: logging.Formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=[handler], force=True)


def build_supervisor(settings: AppSettings) -> Supervisor:
    """Compose the object graph from settings."""
    metrics: FeedMetricsExporter | None = None
    if settings.enable_metrics:
        metrics = FeedMetricsExporter(
            host=settings.metrics_host,
            port=settings.metrics_port,
            start_http=os.environ.get("PYTEST_CURRENT_TEST") is None,
        )

    return Supervisor(
        RedditTokenClient(settings),
        lambda: WebSocketFeedTransport(settings),
        create_notifier(settings),
        backoff=BackoffPolicy(
            initial_delay=settings.reconnect_delay_seconds,
            max_delay=settings.reconnect_max_delay_seconds,
            multiplier=settings.reconnect_multiplier,
        ),
        session_options=SessionOptions(
            renewal_margin_seconds=settings.renewal_margin_seconds,
            notify_timeout_seconds=settings.notify_timeout_seconds,
        ),
        metrics=metrics,
    )


async def run_service(settings: AppSettings) -> None:
    """Run the supervisor until SIGINT/SIGTERM."""
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(sig: int) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    missing = settings.missing_required_fields()
    if missing:
        logger.warning("trendwatch_config_missing", extra={"missing": missing})
    logger.info(
        "Starting trendwatch",
        extra={
            "app_name": settings.app_name,
            "environment": settings.environment,
            "notifier": settings.notifier_backend,
        },
    )
    logger.debug("trendwatch_settings", extra={"settings": settings.to_dict_safe()})

    supervisor = build_supervisor(settings)
    supervisor_task = asyncio.create_task(supervisor.run_forever(shutdown_event))
    stop_task = asyncio.create_task(shutdown_event.wait())
    try:
        await asyncio.wait(
            {supervisor_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if supervisor_task.done() and not supervisor_task.cancelled():
            # only reachable when the loop died on an unexpected error
            supervisor_task.result()
    finally:
        logger.info("Shutting down trendwatch...")
        stop_task.cancel()
        if not supervisor_task.done():
            supervisor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await supervisor_task
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        logger.info(
            "trendwatch stopped",
            extra={
                "sessions": supervisor.sessions_started,
                "seen_items": len(supervisor.seen),
            },
        )


def main() -> None:
    """Start the watcher."""
    settings = get_settings()
    setup_logging(settings)

    try:
        asyncio.run(run_service(settings))
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception:
        logging.getLogger(__name__).exception("Fatal application error")
        sys.exit(1)


if __name__ == "__main__":
    main()
