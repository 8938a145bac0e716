"""OAuth cookie flushing middleware."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from oauth_kit.auth.cookies import CookieJar


class OAuthCookieMiddleware(BaseHTTPMiddleware):
    """Write cookies staged during the request onto the outgoing response.

    Covers responses the route did not build itself, such as error
    responses rendered from a raised ``OAuthError``.
    """

    async def dispatch(self, request: Request, call_next):
        jar = CookieJar.for_request(request)
        jar.managed = True
        response = await call_next(request)
        return jar.apply(response)
