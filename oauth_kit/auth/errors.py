"""OAuth error taxonomy.

Every failure the toolkit raises is an ``HTTPException`` so FastAPI renders
it without extra handlers. Provider errors from ``httpx`` are normalized
into the same shape via ``normalize_error``.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from fastapi import HTTPException

DEFAULT_MESSAGE = "oauth-kit error"


class OAuthError(HTTPException):
    """Base class for toolkit errors."""

    status_code_default = 500

    def __init__(
        self,
        detail: Any = None,
        *,
        status_code: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code or self.status_code_default,
            detail=detail if detail is not None else DEFAULT_MESSAGE,
            headers=headers,
        )


class NotRegistered(OAuthError):
    """No configuration registered for a provider key."""

    status_code_default = 500

    def __init__(self, key: str):
        self.key = key
        super().__init__(f'No OAuth configuration registered for "{key}"')


class MalformedState(OAuthError):
    """The ``state`` query parameter could not be decoded."""

    status_code_default = 400

    def __init__(self, detail: str = "Invalid or malformed OAuth state parameter"):
        super().__init__(detail)


class CsrfMismatch(OAuthError):
    """The CSRF token in ``state`` does not match its cookie."""

    status_code_default = 401

    def __init__(self, detail: str = "CSRF token mismatch"):
        super().__init__(detail)


class MissingOrInvalidTokens(OAuthError):
    """No usable session for a provider key."""

    status_code_default = 401

    def __init__(self, key: str, detail: Optional[str] = None):
        self.key = key
        super().__init__(detail or f'Missing or invalid tokens for "{key}"')


class CorruptedSession(MissingOrInvalidTokens):
    """A schema-declared field cookie is missing."""

    def __init__(self, key: str, field_name: str):
        self.field_name = field_name
        super().__init__(key, f'Session for "{key}" is missing field "{field_name}"')


class RefreshFailed(OAuthError):
    """The provider rejected a refresh token exchange."""

    status_code_default = 401

    def __init__(self, key: str, message: str, provider_status: Optional[int] = None):
        self.key = key
        self.provider_status = provider_status
        super().__init__(f'Token refresh failed for "{key}": {message}')


class TokenExchangeFailed(OAuthError):
    """Authorization code exchange failed; carries the provider's status."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message, status_code=status_code)


class CallbackError(OAuthError):
    """The callback request is missing required parameters."""

    status_code_default = 400


class CallbackRejected(OAuthError):
    """An application check rejected the tokens returned at callback."""

    status_code_default = 401

    def __init__(self, detail: str = "User validation failed after OAuth callback"):
        super().__init__(detail)


def parse_error(exc: BaseException) -> tuple[int, str]:
    """Extract an HTTP status and message from an arbitrary exception.

    Provider responses with an OAuth error body contribute their
    ``error_description`` (or ``error``) as the message.

    Returns:
        Tuple of (status_code, message)
    """
    if isinstance(exc, HTTPException):
        return exc.status_code, str(exc.detail)

    status_code = 500
    message = DEFAULT_MESSAGE

    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            description = body.get("error_description") or body.get("error")
            if isinstance(description, str) and description:
                message = description

    if message == DEFAULT_MESSAGE and str(exc):
        message = str(exc)

    return status_code, message


def normalize_error(exc: BaseException) -> OAuthError:
    """Return ``exc`` as an ``OAuthError``, wrapping it when needed."""
    if isinstance(exc, OAuthError):
        return exc
    status_code, message = parse_error(exc)
    err = OAuthError(message, status_code=status_code)
    err.__cause__ = exc
    return err
