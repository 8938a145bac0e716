"""Token validation and refresh.

Validation reads three cookies (access token, encrypted refresh token and
absolute expiry) and reports one of:

- ``valid``: access token present and unexpired
- ``expired``: a refresh should be attempted
- ``absent``: nothing usable, the user has to log in again
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from oauth_kit.auth.client import TokenClient
from oauth_kit.auth.cookies import DEFAULT_COOKIE_OPTIONS, CookieJar, CookieOptions
from oauth_kit.auth.errors import RefreshFailed
from oauth_kit.auth.keys import namespace
from oauth_kit.auth.providers import ProviderSchema, schema_for
from oauth_kit.auth.registry import ProviderStore
from oauth_kit.auth.token_store import CookieTokenStore, TokenSet

log = logging.getLogger("oauth-kit.tokens")

REFRESH_EXPIRY_SUFFIX = "refresh_token_expires_at"


class ValidationStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    ABSENT = "absent"


@dataclass
class ValidationResult:
    status: ValidationStatus
    tokens: Optional[TokenSet] = None
    # Set when a schema field cookie was missing.
    missing_field: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.status is not ValidationStatus.ABSENT


_ABSENT = ValidationResult(ValidationStatus.ABSENT)


def refresh_expiry_suffix(schema: ProviderSchema) -> str:
    """Cookie suffix holding the refresh token's absolute expiry."""
    for f in schema.resolved_fields():
        if f.key == schema.refresh_lifetime_field:
            return f.suffix
    return REFRESH_EXPIRY_SUFFIX


def normalize(refreshed: TokenSet, previous: TokenSet, schema: ProviderSchema) -> TokenSet:
    """Merge a refresh response over the previous token set.

    Schema-declared fields keep their previous values, since refresh
    responses do not reliably repeat provider metadata. The previous
    refresh token is carried forward when the response omits one.
    """
    fields = dict(previous.fields)
    fields.update(refreshed.fields)
    for key in schema.field_keys():
        if previous.fields.get(key) is not None:
            fields[key] = previous.fields[key]

    return TokenSet(
        access_token=refreshed.access_token,
        expires_in=refreshed.expires_in,
        refresh_token=refreshed.refresh_token or previous.refresh_token,
        token_type=refreshed.token_type or previous.token_type,
        fields=fields,
    )


def should_refresh(tokens: TokenSet, threshold: int, now: int) -> bool:
    """True when an unexpired token expires within ``threshold`` seconds."""
    remaining = tokens.expires_in - now
    return 0 < remaining <= threshold


class TokenValidator:
    """Inspects stored sessions and renews them through the token endpoint."""

    def __init__(
        self,
        registry: ProviderStore,
        store: CookieTokenStore,
        client: TokenClient,
    ):
        self.registry = registry
        self.store = store
        self.client = client

    def inspect(
        self,
        jar: CookieJar,
        provider: str,
        instance_key: Optional[str] = None,
    ) -> ValidationResult:
        """Classify the stored session for a provider key.

        Raises:
            NotRegistered: If a refresh cookie exists for an unregistered key
        """
        ns = namespace(provider, instance_key)
        schema = schema_for(provider)

        access_token = jar.get(f"{ns}_access_token")
        sealed_refresh = jar.get(f"{ns}_refresh_token")
        if not access_token and not sealed_refresh:
            return _ABSENT

        now = self.store.now()

        refresh_token: Optional[str] = None
        if sealed_refresh:
            config = self.registry.get(provider, instance_key)
            try:
                refresh_token = config.decrypt(sealed_refresh)
            except ValueError as e:
                log.warning("Discarding unreadable refresh token for %s: %s", ns, e)
                return _ABSENT

        if not access_token:
            return ValidationResult(
                ValidationStatus.EXPIRED,
                TokenSet(access_token="", expires_in=now, refresh_token=refresh_token),
            )

        expires_raw = jar.get(f"{ns}_access_token_expires_at")
        if not expires_raw:
            return _ABSENT
        try:
            expires_at = int(expires_raw)
        except ValueError:
            log.warning("Unparseable expiry cookie for %s", ns)
            return _ABSENT

        expired = now >= expires_at
        if expired and not refresh_token:
            return _ABSENT

        base = TokenSet(
            access_token=access_token,
            expires_in=expires_at,
            refresh_token=refresh_token,
        )

        if refresh_token and schema.validate_refresh_token_expiry:
            raw = jar.get(f"{ns}_{refresh_expiry_suffix(schema)}")
            try:
                refresh_expires_at = int(raw) if raw else None
            except ValueError:
                refresh_expires_at = None
            if refresh_expires_at is None or now >= refresh_expires_at:
                return ValidationResult(ValidationStatus.EXPIRED, base)

        fields, missing = self.store.read_fields(jar, ns, schema)
        if fields is None:
            log.warning("Session for %s is missing field %s", ns, missing)
            return ValidationResult(ValidationStatus.ABSENT, missing_field=missing)
        base.fields = fields

        status = ValidationStatus.EXPIRED if expired else ValidationStatus.VALID
        return ValidationResult(status, base)

    def validate(
        self,
        jar: CookieJar,
        provider: str,
        instance_key: Optional[str] = None,
    ) -> Optional[ValidationResult]:
        """Like ``inspect`` but returns None for an absent session."""
        result = self.inspect(jar, provider, instance_key)
        return result if result.present else None

    async def refresh(
        self,
        provider: str,
        tokens: TokenSet,
        instance_key: Optional[str] = None,
    ) -> TokenSet:
        """Exchange the stored refresh token for a fresh token set.

        Raises:
            RefreshFailed: If there is no refresh token or the provider refuses
        """
        key = namespace(provider, instance_key)
        if not tokens.refresh_token:
            raise RefreshFailed(key, "No refresh token available")
        config = self.registry.get(provider, instance_key)
        return await self.client.refresh(config, tokens.refresh_token, key)

    async def renew(
        self,
        jar: CookieJar,
        provider: str,
        tokens: TokenSet,
        instance_key: Optional[str] = None,
        options: CookieOptions = DEFAULT_COOKIE_OPTIONS,
    ) -> TokenSet:
        """Refresh, normalize and persist. Returns the stored token set."""
        schema = schema_for(provider)
        refreshed = await self.refresh(provider, tokens, instance_key)
        merged = normalize(refreshed, tokens, schema)
        # Previous schema values came from cookies and are already absolute.
        stored_fields = [k for k in schema.field_keys() if tokens.fields.get(k) is not None]
        config = self.registry.get(provider, instance_key)
        stored = self.store.write(
            jar,
            namespace(provider, instance_key),
            merged,
            config,
            schema,
            options,
            stored_fields=stored_fields,
        )
        log.info("Refreshed tokens for %s", namespace(provider, instance_key))
        return stored
