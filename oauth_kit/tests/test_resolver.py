"""Tests for instance resolution."""

import pytest

from oauth_kit.auth.cookies import CookieJar
from oauth_kit.auth.resolver import ProviderDeclaration, discover_instance, with_instance_keys
from oauth_kit.auth.tokens import ValidationStatus

from conftest import cookie_header, make_request, store_tokens


def _jar(cookies):
    return CookieJar(cookies, cookie_header(cookies))


def test_finds_scoped_session():
    jar = _jar({"other": "1", "clio:acme_refresh_token": "x"})
    assert discover_instance(jar, "clio") == "acme"


def test_first_match_wins():
    jar = _jar({"clio:smithlaw_refresh_token": "x", "clio:acme_refresh_token": "y"})
    assert discover_instance(jar, "clio") == "smithlaw"


def test_global_session_disables_discovery():
    jar = _jar({"clio_refresh_token": "g", "clio:acme_refresh_token": "x"})
    assert discover_instance(jar, "clio") is None


def test_other_provider_is_ignored():
    jar = _jar({"azure:dev_refresh_token": "x", "myclio:acme_refresh_token": "y"})
    assert discover_instance(jar, "clio") is None


def test_access_cookie_alone_is_not_discovered():
    jar = _jar({"clio:acme_access_token": "x"})
    assert discover_instance(jar, "clio") is None


def test_empty_header():
    assert discover_instance(CookieJar(), "clio") is None


@pytest.mark.parametrize(
    "value,provider,instance_key",
    [
        ("clio", "clio", None),
        ("clio:acme", "clio", "acme"),
        ({"provider": "azure", "instance_key": "dev"}, "azure", "dev"),
        (ProviderDeclaration("intuit"), "intuit", None),
    ],
)
def test_coerce(value, provider, instance_key):
    decl = ProviderDeclaration.coerce(value)
    assert decl.provider == provider
    assert decl.instance_key == instance_key


def test_coerce_rejects_other_types():
    with pytest.raises(TypeError):
        ProviderDeclaration.coerce(42)


def test_instance_key_and_resolver_are_exclusive():
    with pytest.raises(ValueError):
        ProviderDeclaration("clio", "acme", resolver=lambda request: "acme")


def test_is_bare():
    assert ProviderDeclaration("clio").is_bare
    assert not ProviderDeclaration("clio", "acme").is_bare
    assert not ProviderDeclaration("clio", resolver=lambda request: None).is_bare


@pytest.mark.asyncio
async def test_bare_provider_discovers_scoped_session(kit):
    cookies = store_tokens(kit, "clio", "acme")
    jar = _jar(cookies)

    resolution = await kit.resolver.resolve(make_request(cookies), jar, ProviderDeclaration("clio"))

    assert resolution.instance_key == "acme"
    assert resolution.result.status is ValidationStatus.VALID


@pytest.mark.asyncio
async def test_bare_provider_prefers_global_session(kit):
    cookies = {**store_tokens(kit, "clio", "acme"), **store_tokens(kit, "clio")}
    resolution = await kit.resolver.resolve(
        make_request(cookies), _jar(cookies), ProviderDeclaration("clio")
    )
    assert resolution.instance_key is None
    assert resolution.result.present


@pytest.mark.asyncio
async def test_explicit_instance_does_not_discover(kit):
    cookies = store_tokens(kit, "clio", "acme")
    resolution = await kit.resolver.resolve(
        make_request(cookies), _jar(cookies), ProviderDeclaration("clio", "smithlaw")
    )
    assert resolution.instance_key == "smithlaw"
    assert not resolution.result.present


@pytest.mark.asyncio
async def test_sync_resolver(kit):
    cookies = store_tokens(kit, "clio", "smithlaw")
    decl = ProviderDeclaration(
        "clio", resolver=lambda request: request.query_params.get("tenant")
    )
    resolution = await kit.resolver.resolve(
        make_request(cookies, query="tenant=smithlaw"), _jar(cookies), decl
    )
    assert resolution.instance_key == "smithlaw"
    assert resolution.result.status is ValidationStatus.VALID


@pytest.mark.asyncio
async def test_async_resolver(kit):
    async def resolver(request):
        return "acme"

    cookies = store_tokens(kit, "clio", "acme")
    resolution = await kit.resolver.resolve(
        make_request(cookies), _jar(cookies), ProviderDeclaration("clio", resolver=resolver)
    )
    assert resolution.instance_key == "acme"


@pytest.mark.asyncio
async def test_resolver_returning_none_uses_global(kit):
    cookies = store_tokens(kit, "clio")
    decl = ProviderDeclaration("clio", resolver=lambda request: None)
    resolution = await kit.resolver.resolve(make_request(cookies), _jar(cookies), decl)
    assert resolution.instance_key is None
    assert resolution.result.present


@pytest.mark.asyncio
async def test_with_instance_keys_rejects_unknown_instance(kit):
    decl = with_instance_keys("clio", ["smithlaw", "acme"], lambda request: "other")
    with pytest.raises(ValueError, match="unknown instance"):
        await kit.resolver.resolve(make_request(), CookieJar(), decl)


@pytest.mark.asyncio
async def test_with_instance_keys_accepts_known_instance(kit):
    decl = with_instance_keys("clio", ["smithlaw", "acme"], lambda request: "acme")
    assert decl.allowed_instances == ("smithlaw", "acme")
    assert await kit.resolver.resolve_key(make_request(), decl) == "acme"
