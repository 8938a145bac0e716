"""Login, callback, logout and revocation flows.

Each flow stages its cookie writes on the request's ``CookieJar``; callers
apply the jar to whatever response they build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import httpx
from fastapi import Request

from oauth_kit.auth.client import build_auth_url
from oauth_kit.auth.cookies import CookieJar, CookieOptions
from oauth_kit.auth.errors import (
    CallbackError,
    CallbackRejected,
    MalformedState,
    normalize_error,
)
from oauth_kit.auth.keys import ProviderKey, namespace
from oauth_kit.auth.kit import OAuthKit
from oauth_kit.auth.providers import maybe_await, schema_for
from oauth_kit.auth.resolver import ProviderDeclaration
from oauth_kit.auth.token_store import TokenSet
from oauth_kit.auth.tokens import ValidationStatus

log = logging.getLogger("oauth-kit.flows")

BASE_CALLBACK_FIELDS = ("code", "state", "error", "error_description")

CallerState = Union[Mapping[str, Any], Callable[[Request], Mapping[str, Any]], None]


@dataclass(frozen=True)
class LoginOptions:
    instance_key: Optional[str] = None
    preserve_instance: bool = False
    # Plain dict, or a callable building one from the request.
    state: CallerState = None
    extra_params: Optional[dict[str, str]] = None


@dataclass
class LoginResult:
    url: str
    provider_key: ProviderKey


@dataclass(frozen=True)
class CallbackOptions:
    """Callback behaviour.

    Attributes:
        instance_equivalent: ``(tokens, request, provider, instance_key) -> bool``;
            a false result rejects the login before any cookie is written
        on_error: ``(exc, request, provider)``; a non-None return replaces
            the error
        cookie_options: Overrides for the cookies written
    """

    instance_equivalent: Optional[Callable[..., Any]] = None
    on_error: Optional[Callable[..., Any]] = None
    cookie_options: Optional[CookieOptions] = None


@dataclass
class CallbackResult:
    tokens: TokenSet
    state: dict[str, Any]
    query: dict[str, str]
    provider_key: ProviderKey


@dataclass(frozen=True)
class LogoutOptions:
    # Also delete every scoped and CSRF cookie the kit could have set.
    all_instances: bool = False


@dataclass
class LogoutResult:
    logged_out: bool = True
    providers: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


@dataclass
class TokenStatus:
    provider: str
    instance_key: Optional[str]
    is_valid: bool
    requires_refresh: bool
    has_refresh_token: bool
    expires_in: Optional[int] = None
    expires_at: Optional[str] = None


def parse_callback_query(request: Request, provider: str) -> dict[str, str]:
    """Standard callback parameters plus the provider's declared extras."""
    names = BASE_CALLBACK_FIELDS + schema_for(provider).callback_query_fields
    return {n: request.query_params[n] for n in names if n in request.query_params}


async def handle_login(
    kit: OAuthKit,
    request: Request,
    provider: str,
    options: LoginOptions = LoginOptions(),
) -> LoginResult:
    """Start a login: set the CSRF cookie and build the authorize URL.

    Raises:
        NotRegistered: If the provider/instance is not registered
        TypeError: If the caller state is not a plain dict
    """
    config = kit.registry.get(provider, options.instance_key)
    key = ProviderKey(provider, options.instance_key, options.preserve_instance)

    caller_state = options.state(request) if callable(options.state) else options.state
    jar = CookieJar.for_request(request)
    state = kit.state.encode(jar, key, caller_state)

    url = build_auth_url(config, state, options.extra_params)
    log.info("Starting OAuth login for %s", key)
    return LoginResult(url=url, provider_key=key)


async def handle_callback(
    kit: OAuthKit,
    request: Request,
    provider: str,
    options: CallbackOptions = CallbackOptions(),
) -> Union[CallbackResult, Any]:
    """Complete a login: verify state, exchange the code, store tokens.

    Returns:
        The callback result, or whatever ``on_error`` substituted

    Raises:
        OAuthError: On any failure ``on_error`` does not handle
    """
    try:
        return await _complete_callback(kit, request, provider, options)
    except Exception as e:
        if options.on_error is not None:
            substitute = await maybe_await(options.on_error(e, request, provider))
            if substitute is not None:
                return substitute
        err = normalize_error(e)
        if err is e:
            raise
        raise err from e


async def _complete_callback(
    kit: OAuthKit,
    request: Request,
    provider: str,
    options: CallbackOptions,
) -> CallbackResult:
    query = parse_callback_query(request, provider)

    if query.get("error"):
        detail = query.get("error_description") or query["error"]
        log.warning("Provider returned error for %s: %s", provider, detail)
        raise CallbackError(f"Authentication failed: {detail}")
    if not query.get("code"):
        raise CallbackError("Authorization code missing in callback URL")
    if not query.get("state"):
        raise CallbackError("State missing in callback URL")

    jar = CookieJar.for_request(request)
    decoded = kit.state.decode(query["state"])
    kit.state.verify(jar, decoded)

    try:
        key = ProviderKey.parse(decoded["providerKey"])
    except ValueError as e:
        raise MalformedState(str(e)) from e
    if key.provider != provider:
        raise MalformedState(f'State was issued for "{key.provider}", not "{provider}"')

    config = kit.registry.get(provider, key.instance_key)
    tokens = await kit.client.exchange_code(config, query["code"])

    if options.instance_equivalent is not None:
        accepted = await maybe_await(
            options.instance_equivalent(tokens, request, provider, key.instance_key)
        )
        if not accepted:
            raise CallbackRejected()

    schema = schema_for(provider)
    cookie_options = options.cookie_options or kit.cookie_options
    if not key.preserve:
        kit.store.delete(jar, provider, schema, cookie_options)

    stored = kit.store.write(jar, key.namespace, tokens, config, schema, cookie_options)

    if config.hooks.on_login is not None:
        await maybe_await(config.hooks.on_login(request, stored, provider, key.instance_key))

    log.info("OAuth login completed for %s", key.namespace)
    return CallbackResult(tokens=stored, state=decoded, query=query, provider_key=key)


async def handle_logout(
    kit: OAuthKit,
    request: Request,
    providers: Sequence[Union[str, ProviderDeclaration, dict[str, Any]]],
    options: LogoutOptions = LogoutOptions(),
) -> LogoutResult:
    """Delete the cookies of each listed session, running ``on_logout`` hooks."""
    jar = CookieJar.for_request(request)
    result = LogoutResult()

    for decl in (ProviderDeclaration.coerce(p) for p in providers):
        if kit.registry.has(decl.provider, decl.instance_key):
            hooks = kit.registry.get(decl.provider, decl.instance_key).hooks
            if hooks.on_logout is not None:
                await maybe_await(hooks.on_logout(request, decl.provider, decl.instance_key))

        schema = schema_for(decl.provider)
        ns = namespace(decl.provider, decl.instance_key)
        result.deleted.extend(kit.store.delete(jar, ns, schema, kit.cookie_options))
        if options.all_instances:
            for name in kit.store.matching_cookies(jar, decl.provider, schema):
                jar.delete(name, kit.cookie_options)
                result.deleted.append(name)
        result.providers.append(ns)

    log.info("Logged out of %s", ", ".join(result.providers))
    return result


def delete_provider_cookies(
    kit: OAuthKit,
    jar: CookieJar,
    provider: str,
    instance_key: Optional[str] = None,
) -> list[str]:
    """Delete one session, or every registered session of a provider."""
    schema = schema_for(provider)
    if instance_key is not None:
        targets = [instance_key]
    else:
        targets = kit.registry.instances(provider) or [None]
    deleted: list[str] = []
    for target in targets:
        deleted.extend(kit.store.delete(jar, namespace(provider, target), schema, kit.cookie_options))
    return deleted


async def revoke_tokens(
    kit: OAuthKit,
    request: Request,
    provider: str,
    instance_key: Optional[str] = None,
    *,
    revoke_remote: bool = True,
) -> bool:
    """Revoke the access token at the provider, then delete local cookies.

    A failed remote revocation is logged and never blocks local cleanup.

    Returns:
        True if the provider accepted the revocation
    """
    jar = CookieJar.for_request(request)
    revoked = False

    if revoke_remote and kit.registry.has(provider, instance_key):
        config = kit.registry.get(provider, instance_key)
        if config.revoke_endpoint:
            result = kit.validator.validate(jar, provider, instance_key)
            if result is not None and result.tokens.access_token:
                try:
                    await kit.client.revoke(config, result.tokens.access_token)
                    revoked = True
                except httpx.HTTPError as e:
                    log.warning(
                        "Failed to revoke token remotely for %s: %s",
                        namespace(provider, instance_key),
                        e,
                    )

    delete_provider_cookies(kit, jar, provider, instance_key)
    return revoked


def check_token_status(
    kit: OAuthKit,
    request: Request,
    provider: str,
    instance_key: Optional[str] = None,
) -> TokenStatus:
    """Report the stored session's state without refreshing it."""
    jar = CookieJar.for_request(request)
    result = kit.validator.validate(jar, provider, instance_key)
    if result is None:
        return TokenStatus(
            provider=provider,
            instance_key=instance_key,
            is_valid=False,
            requires_refresh=False,
            has_refresh_token=False,
        )

    expires_at = result.tokens.expires_in
    expired = result.status is ValidationStatus.EXPIRED
    return TokenStatus(
        provider=provider,
        instance_key=instance_key,
        is_valid=not expired,
        requires_refresh=expired,
        has_refresh_token=bool(result.tokens.refresh_token),
        expires_in=max(expires_at - kit.store.now(), 0),
        expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat(),
    )
