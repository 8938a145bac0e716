"""OAuth router.

Handles per-provider login, callback, logout, status and session routes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from oauth_kit.auth.config import OAuthSettings, get_settings
from oauth_kit.auth.cookies import CookieJar
from oauth_kit.auth.errors import OAuthError
from oauth_kit.auth.flows import (
    LoginOptions,
    LogoutOptions,
    check_token_status,
    handle_callback,
    handle_login,
    handle_logout,
    revoke_tokens,
)
from oauth_kit.auth.kit import OAuthKit, get_kit
from oauth_kit.auth.protected import OAuthContext, ProtectedRoute, error_response
from oauth_kit.auth.resolver import ProviderDeclaration

log = logging.getLogger("oauth-kit.auth-router")

router = APIRouter(prefix="/auth", tags=["auth"])


def get_declaration(
    provider: str,
    instance: Optional[str] = Query(None, description="Provider instance key"),
) -> ProviderDeclaration:
    """Provider declaration from the path and query."""
    try:
        return ProviderDeclaration(provider, instance)
    except ValueError as e:
        raise OAuthError(str(e), status_code=400) from e


def safe_return_to(value: Optional[str], default: str) -> str:
    """Only same-site absolute paths are accepted as redirect targets."""
    if value and value.startswith("/") and not value.startswith("//") and "\\" not in value:
        return value
    return default


@router.get("/{provider}/login")
async def login(
    request: Request,
    provider: str,
    instance: Optional[str] = Query(None, description="Provider instance key"),
    preserve: bool = Query(False, description="Keep global cookies after a scoped login"),
    return_to: Optional[str] = Query(None, description="Path to return to after login"),
    redirect: bool = Query(True, description="Redirect instead of returning the URL"),
    kit: OAuthKit = Depends(get_kit),
    settings: OAuthSettings = Depends(get_settings),
):
    """Start the authorization code flow for a provider."""
    jar = CookieJar.for_request(request)
    state = {"returnTo": safe_return_to(return_to, settings.default_redirect)}
    try:
        result = await handle_login(
            kit,
            request,
            provider,
            LoginOptions(instance_key=instance, preserve_instance=preserve, state=state),
        )
    except ValueError as e:
        return error_response(OAuthError(str(e), status_code=400))
    except OAuthError as e:
        return error_response(e)

    if redirect:
        response = RedirectResponse(url=result.url, status_code=302)
    else:
        response = JSONResponse({"url": result.url, "provider_key": str(result.provider_key)})
    return jar.apply(response)


@router.get("/{provider}/callback")
async def callback(
    request: Request,
    provider: str,
    redirect: bool = Query(True, description="Redirect instead of returning tokens"),
    kit: OAuthKit = Depends(get_kit),
    settings: OAuthSettings = Depends(get_settings),
):
    """Complete the authorization code flow and store tokens."""
    jar = CookieJar.for_request(request)
    try:
        result = await handle_callback(kit, request, provider)
    except OAuthError as e:
        log.warning("OAuth callback failed for %s: %s", provider, e.detail)
        return jar.apply(error_response(e))

    if redirect:
        target = safe_return_to(result.state.get("returnTo"), settings.default_redirect)
        return jar.apply(RedirectResponse(url=target, status_code=302))

    return jar.apply(
        JSONResponse(
            {
                "provider_key": str(result.provider_key),
                "expires_at": result.tokens.expires_in,
                "callback": {k: v for k, v in result.query.items() if k not in ("code", "state")},
            }
        )
    )


@router.post("/{provider}/logout")
async def logout(
    request: Request,
    decl: ProviderDeclaration = Depends(get_declaration),
    all_instances: bool = Query(False, description="Remove every session for the provider"),
    revoke: bool = Query(False, description="Revoke the access token at the provider first"),
    kit: OAuthKit = Depends(get_kit),
):
    """Log out of one provider session."""
    jar = CookieJar.for_request(request)
    if revoke:
        await revoke_tokens(kit, request, decl.provider, decl.instance_key)
    result = await handle_logout(
        kit,
        request,
        [decl],
        LogoutOptions(all_instances=all_instances),
    )
    return jar.apply(JSONResponse({"logged_out": result.logged_out, "providers": result.providers}))


@router.get("/{provider}/status")
async def status(
    request: Request,
    decl: ProviderDeclaration = Depends(get_declaration),
    kit: OAuthKit = Depends(get_kit),
):
    """Report the stored session state without refreshing."""
    try:
        return asdict(check_token_status(kit, request, decl.provider, decl.instance_key))
    except OAuthError as e:
        return error_response(e)


@router.get("/{provider}/session")
async def session(
    request: Request,
    decl: ProviderDeclaration = Depends(get_declaration),
    kit: OAuthKit = Depends(get_kit),
):
    """Validate (refreshing if needed) and describe the resolved session."""
    jar = CookieJar.for_request(request)
    route = ProtectedRoute(kit, [decl])
    try:
        ctx: OAuthContext = await route.authorize(request, jar)
    except OAuthError as e:
        return jar.apply(error_response(e))

    key, tokens = ctx.find(decl.provider)
    return jar.apply(
        JSONResponse(
            {
                "provider_key": key,
                "instance_key": ctx.instances.get(decl.provider),
                "expires_at": tokens.expires_in,
                "token_type": tokens.token_type,
            }
        )
    )
