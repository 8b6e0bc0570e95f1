"""Unit tests for configuration loading and masking."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from trendwatch.config import AppSettings, ChoiceError


class TestEnvironmentLoading:
    """Settings come from the environment, including the legacy bare names."""

    def test_prefixed_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDDIT_CLIENT_ID", "cid")
        monkeypatch.setenv("REDDIT_CLIENT_SECRET", "csecret")
        monkeypatch.setenv("REDDIT_REFRESH_TOKEN", "rtoken")

        settings = AppSettings()

        assert settings.reddit_client_id == "cid"
        assert settings.reddit_client_secret is not None
        assert settings.reddit_client_secret.get_secret_value() == "csecret"
        assert settings.reddit_refresh_token is not None

    def test_bare_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLIENT_ID", "cid")
        monkeypatch.setenv("REFRESH_TOKEN", "rtoken")
        monkeypatch.setenv("LOID", "loid-1")

        settings = AppSettings()

        assert settings.reddit_client_id == "cid"
        assert settings.reddit_refresh_token is not None
        assert settings.reddit_refresh_token.get_secret_value() == "rtoken"
        assert settings.reddit_loid == "loid-1"

    def test_receivers_split_and_deduplicated(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(
            "RECEIVER_EMAIL", " a@example.com,b@example.com ,, a@example.com"
        )

        settings = AppSettings()

        assert settings.receiver_emails == ("a@example.com", "b@example.com")

    def test_defaults(self) -> None:
        settings = AppSettings()

        assert settings.token_url == "https://www.reddit.com/api/v1/access_token"
        assert settings.feed_url == "wss://gql-realtime.reddit.com/query"
        assert settings.renewal_margin_seconds == 60.0
        assert settings.reconnect_delay_seconds == 5.0
        assert settings.notifier_backend == "email"
        assert settings.receiver_emails == ()


class TestValidation:
    def test_backend_is_normalized(self) -> None:
        assert AppSettings(notifier_backend=" LOG ").notifier_backend == "log"

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            AppSettings(notifier_backend="pigeon")

        assert "invalid_notifier_backend" in str(excinfo.value)

    def test_unknown_log_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppSettings(log_format="xml")

    def test_multiplier_below_one_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppSettings(reconnect_multiplier=0.5)

    def test_choice_error_message(self) -> None:
        error = ChoiceError("log_format", {"json", "text"}, "XML")

        assert str(error) == "invalid_log_format allowed=['json', 'text'] provided=xml"


class TestHelpers:
    def test_missing_required_fields_for_email_backend(self) -> None:
        settings = AppSettings(reddit_client_id="cid")

        assert settings.missing_required_fields() == [
            "REDDIT_CLIENT_SECRET",
            "REDDIT_REFRESH_TOKEN",
            "SENDER_EMAIL",
            "EMAIL_APP_PASSWORD",
            "RECEIVER_EMAILS",
        ]

    def test_missing_required_fields_for_log_backend(self) -> None:
        settings = AppSettings(
            notifier_backend="log",
            reddit_client_id="cid",
            reddit_client_secret="s",  # pragma: allowlist secret
            reddit_refresh_token="r",
        )

        assert settings.missing_required_fields() == []

    def test_session_cookie(self) -> None:
        assert AppSettings().session_cookie() is None
        assert AppSettings(reddit_loid="l").session_cookie() == "loid=l"
        assert (
            AppSettings(reddit_session="s", reddit_loid="l").session_cookie()
            == "reddit_session=s; loid=l"
        )

    def test_to_dict_safe_masks_secrets(self) -> None:
        settings = AppSettings(
            reddit_client_secret="client-secret-value",  # pragma: allowlist secret
            reddit_refresh_token="abc",
            email_app_password="app-password",  # pragma: allowlist secret
        )

        safe = settings.to_dict_safe()

        assert safe["reddit_client_secret"] == "clie...ue"
        assert safe["reddit_refresh_token"] == "***"
        assert safe["email_app_password"] == "app-...rd"
        assert safe["reddit_session"] is None
        assert "client-secret-value" not in str(safe)
