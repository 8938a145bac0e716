"""Tests for settings and provider registration loading."""

import json

import pytest

from oauth_kit.auth.config import OAuthSettings, get_settings, reset_settings
from oauth_kit.auth.crypto import TokenCipher

from conftest import TEST_KEY_HEX


def _registration(**overrides):
    entry = {
        "provider": "clio",
        "client_id": "cid",
        "client_secret": "secret",
        "authorize_endpoint": "https://clio.example/oauth/authorize",
        "token_endpoint": "https://clio.example/oauth/token",
        "redirect_uri": "https://app.example/auth/clio/callback",
        "scopes": ["read"],
    }
    entry.update(overrides)
    return entry


def test_defaults(monkeypatch):
    monkeypatch.delenv("OAUTH_ENV", raising=False)
    monkeypatch.delenv("OAUTH_ENCRYPTION_KEY", raising=False)
    reset_settings()

    settings = get_settings()

    assert settings.env == "dev"
    assert settings.cookie_same_site == "lax"
    assert settings.cookie_path == "/"
    assert settings.refresh_token_max_age == 30 * 24 * 60 * 60
    assert settings.http_timeout == 10.0
    assert settings.validate() == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("OAUTH_COOKIE_SAMESITE", " None ")
    monkeypatch.setenv("OAUTH_COOKIE_PATH", "/app")
    monkeypatch.setenv("OAUTH_REFRESH_TOKEN_MAX_AGE", "86400")
    monkeypatch.setenv("OAUTH_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("OAUTH_DEFAULT_REDIRECT", "/dashboard")
    reset_settings()

    settings = get_settings()

    assert settings.cookie_same_site == "none"
    assert settings.cookie_path == "/app"
    assert settings.refresh_token_max_age == 86400
    assert settings.http_timeout == 2.5
    assert settings.default_redirect == "/dashboard"


def test_unparseable_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("OAUTH_REFRESH_TOKEN_MAX_AGE", "forever")
    monkeypatch.setenv("OAUTH_HTTP_TIMEOUT", "fast")
    reset_settings()

    settings = get_settings()
    assert settings.refresh_token_max_age == 30 * 24 * 60 * 60
    assert settings.http_timeout == 10.0


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"env": "prdo"}, "Invalid OAUTH_ENV"),
        ({"encryption_key": "abc"}, "OAUTH_ENCRYPTION_KEY must be 64"),
        ({"env": "prod"}, "must be set in production"),
        ({"cookie_same_site": "strict"}, "OAUTH_COOKIE_SAMESITE"),
        ({"cookie_path": "app"}, "OAUTH_COOKIE_PATH"),
        ({"refresh_token_max_age": 0}, "OAUTH_REFRESH_TOKEN_MAX_AGE"),
        ({"providers_file": "/nonexistent/providers.json"}, "OAUTH_PROVIDERS_FILE not found"),
    ],
)
def test_validate_errors(overrides, message):
    errors = OAuthSettings(**overrides).validate()
    assert any(message in e for e in errors)


def test_prod_with_key_is_valid():
    settings = OAuthSettings(env="production", encryption_key=TEST_KEY_HEX)
    assert settings.is_prod
    assert settings.is_prod_like
    assert settings.validate() == []


def test_staging_is_prod_like():
    settings = OAuthSettings(env="Staging")
    assert settings.is_prod_like
    assert not settings.is_prod


def test_build_cipher_uses_configured_key(cipher):
    built = OAuthSettings(encryption_key=TEST_KEY_HEX).build_cipher()
    assert built.decrypt(cipher.encrypt("refresh")) == "refresh"


def test_build_cipher_without_key_generates_one(caplog):
    built = OAuthSettings().build_cipher()
    assert isinstance(built, TokenCipher)
    assert "OAUTH_ENCRYPTION_KEY not set" in caplog.text


def test_no_file():
    assert OAuthSettings().load_registrations() == []


def test_loads_entries(tmp_path):
    path = tmp_path / "providers.json"
    path.write_text(
        json.dumps(
            [
                _registration(),
                _registration(instance_key="acme", revoke_endpoint="https://clio.example/revoke"),
            ]
        )
    )

    registrations = OAuthSettings(providers_file=str(path)).load_registrations()

    assert [(r.provider, r.instance_key) for r in registrations] == [
        ("clio", None),
        ("clio", "acme"),
    ]
    config = registrations[1].to_config()
    assert config.scopes == ("read",)
    assert config.revoke_endpoint == "https://clio.example/revoke"
    assert config.cipher is None


def test_rejects_non_list(tmp_path):
    path = tmp_path / "providers.json"
    path.write_text(json.dumps(_registration()))
    with pytest.raises(ValueError, match="JSON list"):
        OAuthSettings(providers_file=str(path)).load_registrations()


def test_rejects_invalid_entry(tmp_path):
    path = tmp_path / "providers.json"
    entry = _registration()
    del entry["token_endpoint"]
    path.write_text(json.dumps([entry]))
    with pytest.raises(ValueError, match="Invalid provider registration"):
        OAuthSettings(providers_file=str(path)).load_registrations()
