"""OAuth ``state`` parameter codec.

The state carries a one-time CSRF token bound to a short-lived cookie, the
provider key the login started with, and any caller fields. Wire format:
``quote(base64url(json(state)))`` with base64 padding removed.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import uuid
from typing import Any, Mapping, Optional
from urllib.parse import quote, unquote

from oauth_kit.auth.cookies import DEFAULT_COOKIE_OPTIONS, CookieJar, CookieOptions
from oauth_kit.auth.errors import CsrfMismatch, MalformedState
from oauth_kit.auth.keys import ProviderKey
from oauth_kit.auth.token_store import CSRF_COOKIE_PREFIX

log = logging.getLogger("oauth-kit.state")

CSRF_COOKIE_MAX_AGE = 300
RESERVED_FIELDS = ("csrf", "providerKey", "instanceKey")


def csrf_cookie_name(provider_key: str) -> str:
    return f"{CSRF_COOKIE_PREFIX}{provider_key}"


class StateCodec:
    """Encodes, decodes and verifies the CSRF-bound state parameter."""

    def __init__(self, options: CookieOptions = DEFAULT_COOKIE_OPTIONS):
        self.options = options

    def encode(
        self,
        jar: CookieJar,
        key: ProviderKey,
        caller_state: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Build the state parameter and set its CSRF cookie.

        Caller fields cannot override the CSRF token or provider key.

        Raises:
            TypeError: If ``caller_state`` is not a plain dict
        """
        if caller_state is None:
            caller_state = {}
        if type(caller_state) is not dict:
            raise TypeError("OAuth state must be a plain dict")

        csrf = str(uuid.uuid4())
        provider_key = str(key)
        state: dict[str, Any] = dict(caller_state)
        state["csrf"] = csrf
        state["providerKey"] = provider_key
        if key.instance_key:
            state["instanceKey"] = key.instance_key
        else:
            state.pop("instanceKey", None)

        jar.set(
            csrf_cookie_name(provider_key),
            csrf,
            max_age=CSRF_COOKIE_MAX_AGE,
            options=self.options,
        )

        raw = json.dumps(state, separators=(",", ":")).encode("utf-8")
        encoded = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
        return quote(encoded, safe="")

    def decode(self, raw: str) -> dict[str, Any]:
        """Decode a state parameter.

        Raises:
            MalformedState: If the value is not an encoded object with
                string ``csrf`` and ``providerKey`` entries
        """
        try:
            text = unquote(raw)
            padded = text + "=" * (-len(text) % 4)
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as e:
            log.warning("Rejected malformed OAuth state: %s", e)
            raise MalformedState() from e

        if not isinstance(payload, dict):
            raise MalformedState()
        if not isinstance(payload.get("csrf"), str) or not isinstance(
            payload.get("providerKey"), str
        ):
            raise MalformedState()
        return payload

    def verify(self, jar: CookieJar, decoded: Mapping[str, Any]) -> None:
        """Check the state's CSRF token against its cookie, then consume it.

        Raises:
            CsrfMismatch: If the cookie is absent or differs
        """
        name = csrf_cookie_name(decoded["providerKey"])
        expected = jar.get(name)
        try:
            if not expected or not hmac.compare_digest(
                expected.encode("utf-8"), str(decoded["csrf"]).encode("utf-8")
            ):
                raise CsrfMismatch()
        finally:
            jar.delete(name, self.options)
