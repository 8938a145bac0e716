"""Component bundle shared by flows, routers and protected routes."""

from __future__ import annotations

import time
from typing import Callable, Optional

import httpx
from fastapi import Request

from oauth_kit.auth.client import DEFAULT_TIMEOUT, TokenClient
from oauth_kit.auth.cookies import DEFAULT_COOKIE_OPTIONS, CookieOptions
from oauth_kit.auth.crypto import Cipher
from oauth_kit.auth.registry import ProviderStore
from oauth_kit.auth.resolver import InstanceResolver
from oauth_kit.auth.state import StateCodec
from oauth_kit.auth.token_store import CookieTokenStore
from oauth_kit.auth.tokens import TokenValidator

APP_STATE_ATTR = "oauth_kit"


class OAuthKit:
    """Wires the registry, token store, state codec and validator together.

    Build one per process and share it; all per-request state lives in the
    request's ``CookieJar``.
    """

    def __init__(
        self,
        cipher: Cipher,
        *,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        cookie_options: CookieOptions = DEFAULT_COOKIE_OPTIONS,
        clock: Callable[[], float] = time.time,
    ):
        self.cookie_options = cookie_options
        self.registry = ProviderStore(cipher)
        self.store = CookieTokenStore(clock=clock)
        self.state = StateCodec(cookie_options)
        self.client = TokenClient(http, timeout=timeout)
        self.validator = TokenValidator(self.registry, self.store, self.client)
        self.resolver = InstanceResolver(self.validator)


def get_kit(request: Request) -> OAuthKit:
    """Get the kit installed on the application."""
    kit = getattr(request.app.state, APP_STATE_ATTR, None)
    if kit is None:
        raise RuntimeError("OAuthKit is not installed on this application")
    return kit
