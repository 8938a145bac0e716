"""Cookie-backed token storage.

A token set for namespace ``ns`` lives in these cookies:

    {ns}_access_token            access token, ``Bearer `` prefix stripped
    {ns}_access_token_expires_at absolute expiry in UNIX seconds
    {ns}_refresh_token           refresh token, encrypted
    {ns}_{suffix}                one per schema-declared field

The access token cookie outlives the token itself so an expired session can
still be refreshed instead of silently logging the user out.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Mapping, Optional

from oauth_kit.auth.cookies import DEFAULT_COOKIE_OPTIONS, CookieJar, CookieOptions
from oauth_kit.auth.providers import ProviderConfig, ProviderSchema

log = logging.getLogger("oauth-kit.token-store")

THIRTY_DAYS = 30 * 24 * 60 * 60
ACCESS_TOKEN_MAX_AGE = THIRTY_DAYS
DEFAULT_REFRESH_TOKEN_MAX_AGE = THIRTY_DAYS
DEFAULT_EXPIRES_IN = 3600

BASE_SUFFIXES = ("access_token", "refresh_token", "access_token_expires_at")
CSRF_COOKIE_PREFIX = "oauth_csrf_"
BEARER_PREFIX = "Bearer "

_STANDARD_KEYS = {"access_token", "refresh_token", "expires_in", "token_type"}
_DIGITS = re.compile(r"^\d+$")


def parse_field(raw: str) -> Any:
    """Digit strings become ints, everything else stays a string."""
    return int(raw) if _DIGITS.match(raw) else raw


def strip_bearer(token: str) -> str:
    return token[len(BEARER_PREFIX):] if token.startswith(BEARER_PREFIX) else token


@dataclass
class TokenSet:
    """Tokens for one provider session.

    ``expires_in`` is relative (seconds) as received from a provider and
    absolute (UNIX seconds) once persisted. ``fields`` holds every other
    value in the response, including schema-declared fields.
    """

    access_token: str
    expires_in: int = DEFAULT_EXPIRES_IN
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> TokenSet:
        """Build a token set from a token endpoint JSON response.

        Raises:
            ValueError: If the response has no access token
        """
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response did not include an access_token")
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            expires_in=int(expires_in) if expires_in is not None else DEFAULT_EXPIRES_IN,
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type"),
            fields={k: v for k, v in data.items() if k not in _STANDARD_KEYS},
        )

    def get(self, key: str, default: Any = None) -> Any:
        if key in _STANDARD_KEYS:
            value = getattr(self, key)
            return default if value is None else value
        return self.fields.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.fields)
        data["access_token"] = self.access_token
        data["expires_in"] = self.expires_in
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.token_type is not None:
            data["token_type"] = self.token_type
        return data


def _seconds_remaining(value: Any, now: int, absolute: bool) -> Optional[int]:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return seconds - now if absolute else seconds


class CookieTokenStore:
    """Reads and writes token sets as namespaced cookies."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def write(
        self,
        jar: CookieJar,
        namespace: str,
        tokens: TokenSet,
        config: ProviderConfig,
        schema: ProviderSchema,
        options: CookieOptions = DEFAULT_COOKIE_OPTIONS,
        stored_fields: Collection[str] = (),
    ) -> TokenSet:
        """Persist a token set.

        Args:
            jar: Cookie jar of the current request
            namespace: ``provider`` or ``provider:instance``
            tokens: Token set with a relative ``expires_in``
            config: Provider config supplying the cipher
            schema: Provider field schema
            options: Cookie attribute overrides
            stored_fields: Schema field keys whose values were read back from
                cookies; they are already absolute and are written unchanged

        Returns:
            The token set as it will read back: absolute expiry, stripped
            access token, transformed schema fields
        """
        now = self.now()
        access_token = strip_bearer(tokens.access_token)
        expires_at = now + int(tokens.expires_in)

        jar.set(
            f"{namespace}_access_token",
            access_token,
            max_age=ACCESS_TOKEN_MAX_AGE,
            options=options,
        )
        jar.set(
            f"{namespace}_access_token_expires_at",
            str(expires_at),
            max_age=ACCESS_TOKEN_MAX_AGE,
            options=options,
        )

        if tokens.refresh_token:
            jar.set(
                f"{namespace}_refresh_token",
                config.encrypt(tokens.refresh_token),
                max_age=self._refresh_max_age(tokens, schema, options, now, stored_fields),
                options=options,
            )

        persisted_fields = dict(tokens.fields)
        for f in schema.resolved_fields():
            raw = tokens.fields.get(f.key)
            if raw is None:
                continue
            if f.transform and f.key not in stored_fields:
                value = f.transform(raw, now)
            else:
                value = str(raw)
            jar.set(
                f"{namespace}_{f.suffix}",
                value,
                max_age=ACCESS_TOKEN_MAX_AGE,
                options=options,
            )
            persisted_fields[f.key] = parse_field(value)

        log.debug("Stored tokens for %s (expires_at=%s)", namespace, expires_at)
        return TokenSet(
            access_token=access_token,
            expires_in=expires_at,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            fields=persisted_fields,
        )

    def _refresh_max_age(
        self,
        tokens: TokenSet,
        schema: ProviderSchema,
        options: CookieOptions,
        now: int,
        stored_fields: Collection[str],
    ) -> int:
        field_key = schema.refresh_lifetime_field
        if field_key:
            remaining = _seconds_remaining(
                tokens.fields.get(field_key), now, absolute=field_key in stored_fields
            )
            if remaining is not None and remaining > 0:
                return remaining
        if options.refresh_token_max_age:
            return options.refresh_token_max_age
        return DEFAULT_REFRESH_TOKEN_MAX_AGE

    def read(
        self, jar: CookieJar, namespace: str, schema: ProviderSchema
    ) -> Optional[dict[str, Any]]:
        """Read schema-declared fields.

        Returns:
            Field values keyed by field name, or None if any cookie is missing
        """
        values, _ = self.read_fields(jar, namespace, schema)
        return values

    def read_fields(
        self, jar: CookieJar, namespace: str, schema: ProviderSchema
    ) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        """Like ``read`` but also names the first missing field."""
        values: dict[str, Any] = {}
        for f in schema.resolved_fields():
            raw = jar.get(f"{namespace}_{f.suffix}")
            if raw is None:
                return None, f.key
            values[f.key] = parse_field(raw)
        return values, None

    def keys_for(self, namespace: str, schema: ProviderSchema) -> list[str]:
        """Every cookie name this store writes for ``namespace``."""
        names = [f"{namespace}_{suffix}" for suffix in BASE_SUFFIXES]
        names.extend(f"{namespace}_{f.suffix}" for f in schema.resolved_fields())
        return names

    def patterns_for(self, provider: str, schema: ProviderSchema) -> list[re.Pattern]:
        """Patterns matching every cookie the toolkit could create for a provider."""
        p = re.escape(provider)
        suffixes = list(BASE_SUFFIXES) + [f.suffix for f in schema.resolved_fields()]
        patterns: list[re.Pattern] = []
        for suffix in suffixes:
            s = re.escape(suffix)
            patterns.append(re.compile(rf"^{p}_{s}$"))
            patterns.append(re.compile(rf"^{p}:[^_:]+_{s}$"))
        csrf = re.escape(CSRF_COOKIE_PREFIX)
        patterns.append(re.compile(rf"^{csrf}{p}(:[^_:]+)?(:preserve)?$"))
        return patterns

    def matching_cookies(self, jar: CookieJar, provider: str, schema: ProviderSchema) -> list[str]:
        patterns = self.patterns_for(provider, schema)
        return [n for n in jar.names() if any(pat.match(n) for pat in patterns)]

    def delete(
        self,
        jar: CookieJar,
        namespace: str,
        schema: ProviderSchema,
        options: CookieOptions = DEFAULT_COOKIE_OPTIONS,
    ) -> list[str]:
        """Delete every cookie of a namespace; returns the deleted names."""
        names = self.keys_for(namespace, schema)
        for name in names:
            jar.delete(name, options)
        return names
