"""Outbound calls to provider token endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import httpx

from oauth_kit.auth.errors import RefreshFailed, TokenExchangeFailed, parse_error
from oauth_kit.auth.providers import ProviderConfig
from oauth_kit.auth.token_store import TokenSet

log = logging.getLogger("oauth-kit.client")

DEFAULT_TIMEOUT = 10.0


def build_auth_url(
    config: ProviderConfig,
    state: str,
    extra_params: Optional[dict[str, str]] = None,
) -> str:
    """Build the provider authorization URL for a login redirect.

    ``state`` is already URL-encoded by the state codec and is appended
    as-is so it is not encoded twice.
    """
    parts = urlsplit(config.authorize_endpoint)
    params = parse_qsl(parts.query, keep_blank_values=True)
    params.extend(
        [
            ("client_id", config.client_id),
            ("redirect_uri", config.redirect_uri),
            ("response_type", "code"),
            ("scope", " ".join(config.scopes)),
        ]
    )
    if extra_params:
        params.extend(extra_params.items())
    query = f"{urlencode(params)}&state={state}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class TokenClient:
    """Calls to provider token, revocation and userinfo endpoints.

    An injected ``httpx.AsyncClient`` is reused; otherwise each call opens a
    short-lived client.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._http = http
        self.timeout = timeout

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http is not None:
            response = await self._http.request(method, url, **kwargs)
        else:
            # follow_redirects=False keeps token requests on the configured host.
            async with httpx.AsyncClient(
                follow_redirects=False, timeout=self.timeout
            ) as client:
                response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def post_form(self, url: str, data: dict[str, str]) -> httpx.Response:
        return await self._send("POST", url, data=data, headers={"Accept": "application/json"})

    async def exchange_code(self, config: ProviderConfig, code: str) -> TokenSet:
        """Exchange an authorization code for tokens.

        Raises:
            TokenExchangeFailed: With the provider's status and message
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        try:
            response = await self.post_form(config.token_endpoint, data)
            return TokenSet.from_response(_json_object(response))
        except (httpx.HTTPError, ValueError) as e:
            status_code, message = parse_error(e)
            log.warning("Code exchange failed (%s): %s", status_code, message)
            raise TokenExchangeFailed(message, status_code=status_code) from e

    async def refresh(self, config: ProviderConfig, refresh_token: str, key: str) -> TokenSet:
        """Exchange a refresh token for a new token set.

        Raises:
            RefreshFailed: With the provider's parsed message and status
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        try:
            response = await self.post_form(config.token_endpoint, data)
            return TokenSet.from_response(_json_object(response))
        except (httpx.HTTPError, ValueError) as e:
            status_code, message = parse_error(e)
            log.info("Refresh failed for %s (%s): %s", key, status_code, message)
            raise RefreshFailed(key, message, provider_status=status_code) from e

    async def userinfo(
        self, config: ProviderConfig, access_token: str
    ) -> Optional[dict[str, Any]]:
        """Fetch the user profile for an access token.

        Failures are logged and yield None.
        """
        if not config.userinfo_endpoint:
            return None
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }
        try:
            response = await self._send("GET", config.userinfo_endpoint, headers=headers)
            return _json_object(response)
        except (httpx.HTTPError, ValueError) as e:
            log.warning("Userinfo request to %s failed: %s", config.userinfo_endpoint, e)
            return None

    async def revoke(self, config: ProviderConfig, token: str) -> None:
        """Revoke a token at the provider's revocation endpoint."""
        if not config.revoke_endpoint:
            return
        await self.post_form(
            config.revoke_endpoint,
            {
                "token": token,
                "client_id": config.client_id,
                "client_secret": config.client_secret,
            },
        )


def _json_object(response: httpx.Response) -> dict[str, Any]:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("token endpoint returned a non-object JSON body")
    return body
