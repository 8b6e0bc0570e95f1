"""Global Pytest fixtures for environment sanitization."""

from __future__ import annotations

import os

import pytest

_ENV_PREFIXES = (
    "REDDIT_",
    "CLIENT_",
    "REFRESH_TOKEN",
    "LOID",
    "FEED_",
    "TOKEN_",
    "USER_AGENT",
    "SENDER_EMAIL",
    "EMAIL_",
    "RECEIVER_EMAIL",
    "SMTP_",
    "NOTIFIER_",
    "NOTIFY_",
    "RECONNECT_",
    "RENEWAL_",
    "WS_",
    "LOG_",
    "METRICS_",
    "ENABLE_METRICS",
)


@pytest.fixture(autouse=True)
def _clear_watcher_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove residual watcher env vars between tests (prevents cross-contamination)."""
    for key in list(os.environ):
        if key.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
