"""Protected-route orchestration.

For each declared provider, in order: resolve the instance, validate the
stored session, refresh it when expired (or close to expiring), then record
the tokens in an ``OAuthContext`` for the handler. Providers are processed
one at a time so hooks and cookie writes never interleave.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from oauth_kit.auth.cookies import CookieJar, CookieOptions
from oauth_kit.auth.errors import (
    CorruptedSession,
    MissingOrInvalidTokens,
    OAuthError,
    RefreshFailed,
    normalize_error,
)
from oauth_kit.auth.keys import namespace
from oauth_kit.auth.kit import OAuthKit, get_kit
from oauth_kit.auth.providers import maybe_await
from oauth_kit.auth.resolver import ProviderDeclaration
from oauth_kit.auth.token_store import TokenSet
from oauth_kit.auth.tokens import ValidationStatus, should_refresh

log = logging.getLogger("oauth-kit.protected")

Declaration = Union[str, ProviderDeclaration, dict[str, Any]]
AuthFailureHook = Callable[..., Union[Awaitable[Any], Any]]


class AuthFailureReason(str, enum.Enum):
    MISSING_OR_INVALID_TOKENS = "missing-or-invalid-tokens"
    TOKEN_REFRESH_FAILED = "token-refresh-failed"
    ERROR_OCCURRED = "error-occurred"


def failure_reason(exc: BaseException) -> AuthFailureReason:
    if isinstance(exc, MissingOrInvalidTokens):
        return AuthFailureReason.MISSING_OR_INVALID_TOKENS
    if isinstance(exc, RefreshFailed):
        return AuthFailureReason.TOKEN_REFRESH_FAILED
    return AuthFailureReason.ERROR_OCCURRED


@dataclass
class OAuthContext:
    """Tokens resolved for one request.

    Attributes:
        tokens: Token sets keyed by namespace (``clio`` or ``clio:acme``)
        instances: Resolved instance key (or None) keyed by bare provider
        userinfo: Userinfo response (None if the fetch failed) keyed by
            namespace, for providers with a userinfo endpoint
    """

    tokens: dict[str, TokenSet] = field(default_factory=dict)
    instances: dict[str, Optional[str]] = field(default_factory=dict)
    userinfo: dict[str, Optional[dict[str, Any]]] = field(default_factory=dict)

    def __getitem__(self, key: str) -> TokenSet:
        return self.tokens[key]

    def __contains__(self, key: str) -> bool:
        return key in self.tokens

    def find(self, provider: str) -> Optional[tuple[str, TokenSet]]:
        """Tokens for a provider: the global session, else the first scoped one."""
        if provider in self.tokens:
            return provider, self.tokens[provider]
        prefix = f"{provider}:"
        for key, tokens in self.tokens.items():
            if key.startswith(prefix):
                return key, tokens
        return None


class ProtectedRoute:
    """Authorizes a request against an ordered list of providers."""

    def __init__(
        self,
        kit: OAuthKit,
        providers: Sequence[Declaration],
        *,
        on_auth_failure: Optional[AuthFailureHook] = None,
        cookie_options: Optional[CookieOptions] = None,
        refresh_threshold: Optional[int] = None,
    ):
        self.kit = kit
        self.providers = [ProviderDeclaration.coerce(p) for p in providers]
        self.on_auth_failure = on_auth_failure
        self.cookie_options = cookie_options or kit.cookie_options
        self.refresh_threshold = refresh_threshold

    async def authorize(self, request: Request, jar: CookieJar) -> Union[OAuthContext, Any]:
        """Authorize every declared provider.

        Returns:
            The populated context, or the value ``on_auth_failure`` chose to
            return instead

        Raises:
            OAuthError: When a provider fails and the hook declines
        """
        ctx = OAuthContext()
        for decl in self.providers:
            try:
                await self._authorize_one(request, jar, decl, ctx)
            except Exception as e:
                err = normalize_error(e)
                reason = failure_reason(e)
                log.info(
                    "OAuth authorization failed for %s: %s",
                    decl.provider,
                    reason.value,
                    extra={"provider": decl.provider, "status_code": err.status_code},
                )
                if self.on_auth_failure is not None:
                    substitute = await maybe_await(
                        self.on_auth_failure(request, decl.provider, reason, err)
                    )
                    if substitute is not None:
                        return substitute
                if err is e:
                    raise
                raise err from e
        request.state.oauth = ctx
        return ctx

    async def _authorize_one(
        self,
        request: Request,
        jar: CookieJar,
        decl: ProviderDeclaration,
        ctx: OAuthContext,
    ) -> None:
        resolution = await self.kit.resolver.resolve(request, jar, decl)
        instance_key = resolution.instance_key
        key = namespace(decl.provider, instance_key)
        result = resolution.result

        if not result.present:
            if result.missing_field:
                raise CorruptedSession(key, result.missing_field)
            raise MissingOrInvalidTokens(key)

        tokens = result.tokens
        # Early refresh needs a refresh token; without one the valid token is used.
        needs_refresh = result.status is ValidationStatus.EXPIRED or (
            self.refresh_threshold is not None
            and tokens.refresh_token is not None
            and should_refresh(tokens, self.refresh_threshold, self.kit.store.now())
        )

        if needs_refresh:
            hooks = self.kit.registry.get(decl.provider, instance_key).hooks
            previous = tokens
            try:
                tokens = await self.kit.validator.renew(
                    jar, decl.provider, tokens, instance_key, self.cookie_options
                )
            except RefreshFailed:
                if hooks.on_token_expired is not None:
                    await maybe_await(hooks.on_token_expired(request, decl.provider, instance_key))
                raise
            if hooks.on_token_refresh is not None:
                await maybe_await(
                    hooks.on_token_refresh(request, previous, tokens, decl.provider, instance_key)
                )

        ctx.tokens[key] = tokens
        ctx.instances[decl.provider] = instance_key

        if self.kit.registry.has(decl.provider, instance_key):
            config = self.kit.registry.get(decl.provider, instance_key)
            if config.userinfo_endpoint:
                ctx.userinfo[key] = await self.kit.client.userinfo(config, tokens.access_token)


def error_response(err: OAuthError) -> JSONResponse:
    return JSONResponse(
        {"detail": err.detail}, status_code=err.status_code, headers=err.headers
    )


def as_response(value: Any) -> Response:
    if isinstance(value, Response):
        return value
    return JSONResponse(jsonable_encoder(value))


def protected_route(
    providers: Sequence[Declaration],
    *,
    kit: Optional[OAuthKit] = None,
    on_auth_failure: Optional[AuthFailureHook] = None,
    cookie_options: Optional[CookieOptions] = None,
    refresh_threshold: Optional[int] = None,
):
    """Turn ``handler(request, ctx)`` into an endpoint taking only ``request``.

    Cookie writes made while authorizing (refreshed tokens, deletions) are
    applied to whatever response the handler or failure hook produces.
    """

    def decorator(handler: Callable[[Request, OAuthContext], Any]):
        async def endpoint(request: Request) -> Response:
            route = ProtectedRoute(
                kit or get_kit(request),
                providers,
                on_auth_failure=on_auth_failure,
                cookie_options=cookie_options,
                refresh_threshold=refresh_threshold,
            )
            jar = CookieJar.for_request(request)
            try:
                outcome = await route.authorize(request, jar)
            except OAuthError as e:
                return jar.apply(error_response(e))
            if not isinstance(outcome, OAuthContext):
                return jar.apply(as_response(outcome))
            result = await maybe_await(handler(request, outcome))
            return jar.apply(as_response(result))

        # No functools.wraps: FastAPI must see the single ``request`` parameter.
        endpoint.__name__ = handler.__name__
        endpoint.__doc__ = handler.__doc__
        return endpoint

    return decorator


def require_oauth(
    providers: Sequence[Declaration],
    *,
    cookie_options: Optional[CookieOptions] = None,
    refresh_threshold: Optional[int] = None,
):
    """FastAPI dependency factory yielding an ``OAuthContext``.

    With ``OAuthCookieMiddleware`` installed, the middleware flushes refreshed
    cookies onto whatever response is sent, error responses included.
    Without it they are copied onto the injected ``Response``, which FastAPI
    drops when the dependency raises or the handler returns its own
    ``Response``. Failures raise; use ``protected_route``
    when a failure hook should replace the response.
    """

    async def _require_oauth(request: Request, response: Response) -> OAuthContext:
        route = ProtectedRoute(
            get_kit(request),
            providers,
            cookie_options=cookie_options,
            refresh_threshold=refresh_threshold,
        )
        jar = CookieJar.for_request(request)
        try:
            return await route.authorize(request, jar)
        finally:
            if not jar.managed:
                jar.apply(response)

    return _require_oauth
