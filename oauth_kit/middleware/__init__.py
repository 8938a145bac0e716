"""OAuth kit middleware."""

from oauth_kit.middleware.cookies import OAuthCookieMiddleware
from oauth_kit.middleware.logging import StructuredLoggingMiddleware
from oauth_kit.middleware.request_id import RequestIdMiddleware

__all__ = ["OAuthCookieMiddleware", "RequestIdMiddleware", "StructuredLoggingMiddleware"]
