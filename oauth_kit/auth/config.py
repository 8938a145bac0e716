"""OAuth kit configuration.

Handles environment-based settings and the provider registration file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from oauth_kit.auth.crypto import KEY_HEX_LENGTH, TokenCipher
from oauth_kit.auth.providers import ProviderConfig

log = logging.getLogger("oauth-kit.config")

VALID_ENVS = {"prod", "production", "staging", "dev", "development", "local", "test"}


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


class ProviderRegistration(BaseModel):
    """One entry of the providers file."""

    provider: str = Field(..., min_length=1)
    instance_key: Optional[str] = None
    client_id: str
    client_secret: str
    authorize_endpoint: str
    token_endpoint: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    userinfo_endpoint: Optional[str] = None
    revoke_endpoint: Optional[str] = None
    introspection_endpoint: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None
    extra: dict = Field(default_factory=dict)

    def to_config(self) -> ProviderConfig:
        return ProviderConfig(
            client_id=self.client_id,
            client_secret=self.client_secret,
            authorize_endpoint=self.authorize_endpoint,
            token_endpoint=self.token_endpoint,
            redirect_uri=self.redirect_uri,
            scopes=tuple(self.scopes),
            userinfo_endpoint=self.userinfo_endpoint,
            revoke_endpoint=self.revoke_endpoint,
            introspection_endpoint=self.introspection_endpoint,
            device_authorization_endpoint=self.device_authorization_endpoint,
            extra=dict(self.extra),
        )


@dataclass(frozen=True)
class OAuthSettings:
    """Settings from environment variables.

    Environment Variables:
        OAUTH_ENV: Environment (prod/staging/dev/test)
        OAUTH_ENCRYPTION_KEY: 64 hex chars; required in prod/staging
        OAUTH_COOKIE_SAMESITE: ``lax`` (default) or ``none``
        OAUTH_COOKIE_PATH: Cookie path (default: /)
        OAUTH_REFRESH_TOKEN_MAX_AGE: Refresh cookie lifetime in seconds when
            the provider does not declare one (default: 30 days)
        OAUTH_HTTP_TIMEOUT: Token endpoint timeout in seconds (default: 10)
        OAUTH_PROVIDERS_FILE: JSON list of provider registrations
        OAUTH_DEFAULT_REDIRECT: Where callbacks and logouts land (default: /)
    """

    env: str = "dev"
    encryption_key: Optional[str] = None
    cookie_same_site: str = "lax"
    cookie_path: str = "/"
    refresh_token_max_age: int = 30 * 24 * 60 * 60
    http_timeout: float = 10.0
    providers_file: Optional[str] = None
    default_redirect: str = "/"

    @property
    def env_lower(self) -> str:
        return (self.env or "dev").strip().lower()

    @property
    def is_prod(self) -> bool:
        return self.env_lower in ("prod", "production")

    @property
    def is_prod_like(self) -> bool:
        return self.env_lower in ("prod", "production", "staging")

    def validate(self) -> list[str]:
        errors: list[str] = []

        if self.env_lower not in VALID_ENVS:
            errors.append(
                f"Invalid OAUTH_ENV='{self.env}'. Valid values: {', '.join(sorted(VALID_ENVS))}."
            )

        if self.encryption_key:
            try:
                TokenCipher.from_hex(self.encryption_key)
            except ValueError:
                errors.append(f"OAUTH_ENCRYPTION_KEY must be {KEY_HEX_LENGTH} hex characters")
        elif self.is_prod_like:
            errors.append("OAUTH_ENCRYPTION_KEY must be set in production/staging")

        if self.cookie_same_site not in ("lax", "none"):
            errors.append("OAUTH_COOKIE_SAMESITE must be 'lax' or 'none'")

        if not self.cookie_path.startswith("/"):
            errors.append("OAUTH_COOKIE_PATH must start with '/'")

        if self.refresh_token_max_age <= 0:
            errors.append("OAUTH_REFRESH_TOKEN_MAX_AGE must be positive")

        if self.providers_file and not Path(self.providers_file).is_file():
            errors.append(f"OAUTH_PROVIDERS_FILE not found: {self.providers_file}")

        return errors

    def build_cipher(self) -> TokenCipher:
        if self.encryption_key:
            return TokenCipher.from_hex(self.encryption_key)
        log.warning("OAUTH_ENCRYPTION_KEY not set, using a per-process key")
        return TokenCipher.generate()

    def load_registrations(self) -> list[ProviderRegistration]:
        """Read and validate the providers file.

        Raises:
            ValueError: If the file is not a JSON list of valid registrations
        """
        if not self.providers_file:
            return []
        raw = json.loads(Path(self.providers_file).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("OAUTH_PROVIDERS_FILE must contain a JSON list")
        try:
            return [ProviderRegistration.model_validate(item) for item in raw]
        except ValidationError as e:
            raise ValueError(f"Invalid provider registration: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> OAuthSettings:
    return OAuthSettings(
        env=os.getenv("OAUTH_ENV", "dev"),
        encryption_key=os.getenv("OAUTH_ENCRYPTION_KEY") or None,
        cookie_same_site=(os.getenv("OAUTH_COOKIE_SAMESITE") or "lax").strip().lower(),
        cookie_path=os.getenv("OAUTH_COOKIE_PATH") or "/",
        refresh_token_max_age=_env_int("OAUTH_REFRESH_TOKEN_MAX_AGE", 30 * 24 * 60 * 60),
        http_timeout=_env_float("OAUTH_HTTP_TIMEOUT", 10.0),
        providers_file=os.getenv("OAUTH_PROVIDERS_FILE") or None,
        default_redirect=os.getenv("OAUTH_DEFAULT_REDIRECT") or "/",
    )


def reset_settings() -> None:
    """Clear cached settings (for tests)."""
    get_settings.cache_clear()
