"""Test fixtures for oauth-kit."""

from typing import Optional
from urllib.parse import parse_qsl

import httpx
import pytest
from starlette.requests import Request

from oauth_kit.auth.config import reset_settings
from oauth_kit.auth.cookies import CookieJar
from oauth_kit.auth.crypto import TokenCipher
from oauth_kit.auth.kit import OAuthKit
from oauth_kit.auth.providers import ProviderConfig, schema_for
from oauth_kit.auth.token_store import TokenSet

TEST_KEY_HEX = "00112233445566778899aabbccddeeff" * 2
T0 = 1_700_000_000


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeProvider:
    """Token, revocation and userinfo endpoints served through ``httpx.MockTransport``."""

    def __init__(self):
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.token_status = 200
        self.token_body: dict = {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.revoke_status = 200
        self.userinfo_status = 200
        self.userinfo_body: dict = {"sub": "user-1", "email": "user@example.com"}
        self.bearer_tokens: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.requests.append((request.url.path, form))
        if request.url.path.endswith("/revoke"):
            return httpx.Response(self.revoke_status)
        if request.url.path.endswith("/userinfo"):
            self.bearer_tokens.append(request.headers.get("authorization", ""))
            return httpx.Response(self.userinfo_status, json=self.userinfo_body)
        return httpx.Response(self.token_status, json=self.token_body)

    def calls(self, suffix: str) -> list[dict[str, str]]:
        return [form for path, form in self.requests if path.endswith(suffix)]


def make_config(name: str = "clio", **overrides) -> ProviderConfig:
    values = dict(
        client_id=f"{name}-client",
        client_secret=f"{name}-secret",
        authorize_endpoint=f"https://{name}.example/oauth/authorize",
        token_endpoint=f"https://{name}.example/oauth/token",
        redirect_uri=f"https://app.example/auth/{name}/callback",
        scopes=("read", "write"),
        revoke_endpoint=f"https://{name}.example/oauth/revoke",
    )
    values.update(overrides)
    return ProviderConfig(**values)


def cookie_header(cookies: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def make_request(
    cookies: Optional[dict[str, str]] = None,
    query: str = "",
    raw_cookie: Optional[str] = None,
) -> Request:
    header = raw_cookie if raw_cookie is not None else cookie_header(cookies or {})
    headers = [(b"cookie", header.encode())] if header else []
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": query.encode(),
            "headers": headers,
        }
    )


def jar_cookies(jar: CookieJar) -> dict[str, str]:
    """Cookies a browser would send after ``jar`` is applied."""
    return {name: jar.get(name) for name in jar.names()}


def store_tokens(
    kit: OAuthKit,
    provider: str,
    instance_key: Optional[str] = None,
    **token_values,
) -> dict[str, str]:
    """Write a token set and return the resulting cookies."""
    values = {
        "access_token": "stored-access",
        "refresh_token": "stored-refresh",
        "expires_in": 3600,
    }
    values.update(token_values)
    jar = CookieJar()
    ns = f"{provider}:{instance_key}" if instance_key else provider
    kit.store.write(
        jar,
        ns,
        TokenSet.from_response(values),
        kit.registry.get(provider, instance_key),
        schema_for(provider),
    )
    return jar_cookies(jar)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Isolate settings from the host environment."""
    monkeypatch.setenv("OAUTH_ENV", "test")
    monkeypatch.setenv("OAUTH_ENCRYPTION_KEY", TEST_KEY_HEX)
    for key in (
        "OAUTH_COOKIE_SAMESITE",
        "OAUTH_COOKIE_PATH",
        "OAUTH_REFRESH_TOKEN_MAX_AGE",
        "OAUTH_HTTP_TIMEOUT",
        "OAUTH_PROVIDERS_FILE",
        "OAUTH_DEFAULT_REDIRECT",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def cipher():
    return TokenCipher.from_hex(TEST_KEY_HEX)


@pytest.fixture
def kit(clock, provider, cipher):
    """Kit with global and scoped registrations for clio and azure, plus intuit."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    kit = OAuthKit(cipher, http=http, clock=clock)
    kit.registry.register("clio", make_config("clio"))
    kit.registry.register(
        "clio", make_config("clio", client_id="smithlaw-client"), instance_key="smithlaw"
    )
    kit.registry.register(
        "clio", make_config("clio", client_id="acme-client"), instance_key="acme"
    )
    kit.registry.register("azure", make_config("azure"))
    kit.registry.register(
        "azure", make_config("azure", client_id="azure-dev-client"), instance_key="dev"
    )
    kit.registry.register("intuit", make_config("intuit"))
    return kit


def set_cookies(response) -> dict[str, str]:
    """``Set-Cookie`` headers of a test client response, keyed by cookie name."""
    return {h.split("=", 1)[0]: h for h in response.headers.get_list("set-cookie")}
