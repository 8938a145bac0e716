"""OAuth session engine.

Provider registry, cookie token store, state codec, token validation and
refresh, instance resolution, protected routes and the login/callback/logout
flows.
"""

from oauth_kit.auth.config import OAuthSettings, get_settings, reset_settings
from oauth_kit.auth.cookies import CookieJar, CookieOptions
from oauth_kit.auth.crypto import TokenCipher
from oauth_kit.auth.errors import (
    CallbackError,
    CallbackRejected,
    CorruptedSession,
    CsrfMismatch,
    MalformedState,
    MissingOrInvalidTokens,
    NotRegistered,
    OAuthError,
    RefreshFailed,
    TokenExchangeFailed,
    normalize_error,
)
from oauth_kit.auth.flows import (
    CallbackOptions,
    LoginOptions,
    LogoutOptions,
    check_token_status,
    delete_provider_cookies,
    handle_callback,
    handle_login,
    handle_logout,
    revoke_tokens,
)
from oauth_kit.auth.keys import ProviderKey
from oauth_kit.auth.kit import OAuthKit, get_kit
from oauth_kit.auth.protected import (
    AuthFailureReason,
    OAuthContext,
    ProtectedRoute,
    protected_route,
    require_oauth,
)
from oauth_kit.auth.providers import (
    ProviderConfig,
    ProviderHooks,
    ProviderSchema,
    TokenField,
    register_schema,
)
from oauth_kit.auth.registry import ProviderStore
from oauth_kit.auth.resolver import ProviderDeclaration, with_instance_keys
from oauth_kit.auth.token_store import CookieTokenStore, TokenSet
from oauth_kit.auth.tokens import TokenValidator, ValidationStatus, normalize

__all__ = [
    # Config
    "OAuthSettings",
    "get_settings",
    "reset_settings",
    # Building blocks
    "CookieJar",
    "CookieOptions",
    "TokenCipher",
    "ProviderKey",
    "ProviderStore",
    "ProviderConfig",
    "ProviderHooks",
    "ProviderSchema",
    "TokenField",
    "register_schema",
    "CookieTokenStore",
    "TokenSet",
    "TokenValidator",
    "ValidationStatus",
    "normalize",
    "OAuthKit",
    "get_kit",
    # Routes
    "ProviderDeclaration",
    "with_instance_keys",
    "AuthFailureReason",
    "OAuthContext",
    "ProtectedRoute",
    "protected_route",
    "require_oauth",
    # Flows
    "LoginOptions",
    "CallbackOptions",
    "LogoutOptions",
    "handle_login",
    "handle_callback",
    "handle_logout",
    "revoke_tokens",
    "delete_provider_cookies",
    "check_token_status",
    # Errors
    "OAuthError",
    "NotRegistered",
    "MalformedState",
    "CsrfMismatch",
    "MissingOrInvalidTokens",
    "CorruptedSession",
    "RefreshFailed",
    "TokenExchangeFailed",
    "CallbackError",
    "CallbackRejected",
    "normalize_error",
]
