"""Refresh-token exchange against the reddit OAuth endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import SecretStr

from trendwatch.domain.errors import AuthError
from trendwatch.domain.models import Credential
from trendwatch.domain.ports import CredentialProviderPort

if TYPE_CHECKING:
    from trendwatch.config import AppSettings

logger = logging.getLogger(__name__)


def _secret(value: SecretStr | None) -> str | None:
    return value.get_secret_value() if value is not None else None


class RedditTokenClient(CredentialProviderPort):
    """Exchange the configured refresh token for a short-lived access token.

    Each call performs exactly one HTTP request; retrying is the
    supervisor's job.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Store settings; ``transport`` lets tests swap the network layer."""
        self._url = settings.token_url
        self._client_id = settings.reddit_client_id or ""
        self._client_secret = _secret(settings.reddit_client_secret) or ""
        self._refresh_token = _secret(settings.reddit_refresh_token) or ""
        self._user_agent = settings.user_agent
        self._timeout = settings.token_timeout_seconds
        self._transport = transport

    async def acquire(self) -> Credential:
        """Perform the refresh grant and return the issued credential."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._url,
                    auth=httpx.BasicAuth(self._client_id, self._client_secret),
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self._refresh_token,
                    },
                    headers={"User-Agent": self._user_agent},
                )
        except httpx.RequestError as exc:
            raise AuthError(f"token_request_failed error={exc!r}") from exc

        if not response.is_success:
            raise AuthError("token refresh failed", status_code=response.status_code)
        try:
            body: Any = response.json()
        except ValueError as exc:
            raise AuthError(
                "token_response_not_json", status_code=response.status_code
            ) from exc
        return _credential_from_body(body, response.status_code)


def _credential_from_body(body: Any, status_code: int) -> Credential:
    if not isinstance(body, dict):
        raise AuthError("token_response_not_object", status_code=status_code)
    token = body.get("access_token")
    expires_in = body.get("expires_in")
    if not isinstance(token, str) or not token:
        raise AuthError("token_response_missing_access_token", status_code=status_code)
    valid_ttl = isinstance(expires_in, int) and not isinstance(expires_in, bool)
    if not valid_ttl or expires_in < 0:
        raise AuthError("token_response_invalid_expires_in", status_code=status_code)
    logger.debug("token_exchanged", extra={"expires_in": expires_in})
    return Credential(token=token, expires_in_seconds=expires_in)
