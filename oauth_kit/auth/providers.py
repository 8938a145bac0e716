"""Provider configuration and token field schemas.

``ProviderConfig`` holds one registered OAuth application. ``ProviderSchema``
declares which provider-specific token fields must survive the round trip
through cookies and through refresh, which callback query parameters a
provider sends, and whether the refresh token carries its own expiry.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from oauth_kit.auth.crypto import Cipher

# (value, now) -> cookie value
FieldTransform = Callable[[Any, int], str]
Hook = Callable[..., Union[Awaitable[Any], Any]]


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a sync-or-async callback returned a coroutine."""
    if inspect.isawaitable(value):
        return await value
    return value


def relative_to_absolute(value: Any, now: int) -> str:
    """Convert "seconds from now" into an absolute UNIX timestamp."""
    return str(now + int(value))


@dataclass(frozen=True)
class TokenField:
    """Structured schema field.

    Attributes:
        key: Token response field name
        cookie_name: Cookie suffix after ``{namespace}_`` (default: ``key``)
        transform: Pure function applied before the value is written
    """

    key: str
    cookie_name: Optional[str] = None
    transform: Optional[FieldTransform] = None

    @property
    def suffix(self) -> str:
        return self.cookie_name or self.key


SchemaField = Union[str, TokenField]


@dataclass(frozen=True)
class ProviderSchema:
    """Declarative per-provider token field schema."""

    fields: tuple[SchemaField, ...] = ()
    callback_query_fields: tuple[str, ...] = ()
    validate_refresh_token_expiry: bool = False
    refresh_lifetime_field: Optional[str] = None

    def resolved_fields(self) -> list[TokenField]:
        """Return every field as a ``TokenField``, preserving order."""
        resolved: list[TokenField] = []
        for f in self.fields:
            if isinstance(f, TokenField):
                resolved.append(f)
            elif isinstance(f, str) and f:
                resolved.append(TokenField(key=f))
        return resolved

    def field_keys(self) -> list[str]:
        return [f.key for f in self.resolved_fields()]


DEFAULT_SCHEMA = ProviderSchema()

KNOWN_SCHEMAS: dict[str, ProviderSchema] = {
    "azure": ProviderSchema(
        fields=(
            TokenField(
                key="ext_expires_in",
                cookie_name="ext_expires_at",
                transform=relative_to_absolute,
            ),
        ),
        callback_query_fields=("session_state", "id_token"),
    ),
    "clio": ProviderSchema(),
    "intuit": ProviderSchema(
        fields=(
            TokenField(
                key="x_refresh_token_expires_in",
                cookie_name="refresh_token_expires_at",
                transform=relative_to_absolute,
            ),
        ),
        callback_query_fields=("realmId",),
        validate_refresh_token_expiry=True,
        refresh_lifetime_field="x_refresh_token_expires_in",
    ),
    "mycase": ProviderSchema(),
}


def schema_for(provider: str) -> ProviderSchema:
    """Get the field schema for a provider, or the empty default."""
    return KNOWN_SCHEMAS.get(provider, DEFAULT_SCHEMA)


def register_schema(provider: str, schema: ProviderSchema) -> None:
    """Declare the field schema for a provider not shipped with the kit."""
    KNOWN_SCHEMAS[provider] = schema


@dataclass(frozen=True)
class ProviderHooks:
    """Optional lifecycle callbacks. Each may be sync or async.

    Attributes:
        on_login: ``(request, tokens, provider, instance_key)``
        on_logout: ``(request, provider, instance_key)``
        on_token_refresh: ``(request, old_tokens, new_tokens, provider, instance_key)``
        on_token_expired: ``(request, provider, instance_key)``
    """

    on_login: Optional[Hook] = None
    on_logout: Optional[Hook] = None
    on_token_refresh: Optional[Hook] = None
    on_token_expired: Optional[Hook] = None


@dataclass(frozen=True)
class ProviderConfig:
    """A registered OAuth application.

    The registry injects ``cipher`` at registration time; configs built by
    callers leave it unset.
    """

    client_id: str
    client_secret: str
    authorize_endpoint: str
    token_endpoint: str
    redirect_uri: str
    scopes: tuple[str, ...] = ()
    userinfo_endpoint: Optional[str] = None
    revoke_endpoint: Optional[str] = None
    introspection_endpoint: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)
    hooks: ProviderHooks = field(default_factory=ProviderHooks)
    cipher: Optional[Cipher] = None

    def encrypt(self, value: str) -> str:
        if self.cipher is None:
            raise RuntimeError("provider config has no cipher; register it first")
        return self.cipher.encrypt(value)

    def decrypt(self, value: str) -> str:
        if self.cipher is None:
            raise RuntimeError("provider config has no cipher; register it first")
        return self.cipher.decrypt(value)
