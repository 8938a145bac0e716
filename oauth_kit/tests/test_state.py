"""Tests for the OAuth state codec."""

import base64
import json

import pytest
from starlette.responses import Response

from oauth_kit.auth.cookies import CookieJar
from oauth_kit.auth.errors import CsrfMismatch, MalformedState
from oauth_kit.auth.keys import ProviderKey
from oauth_kit.auth.state import StateCodec


@pytest.fixture
def codec():
    return StateCodec()


def _b64(obj) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")


def test_encode_sets_csrf_cookie(codec):
    jar = CookieJar()
    raw = codec.encode(jar, ProviderKey("clio", "smithlaw"), {"returnTo": "/dash"})
    decoded = codec.decode(raw)

    assert decoded["providerKey"] == "clio:smithlaw"
    assert decoded["instanceKey"] == "smithlaw"
    assert decoded["returnTo"] == "/dash"
    assert jar.get("oauth_csrf_clio:smithlaw") == decoded["csrf"]


def test_csrf_cookie_is_short_lived(codec):
    jar = CookieJar()
    codec.encode(jar, ProviderKey("clio"))
    response = Response()
    jar.apply(response)
    (header,) = response.headers.getlist("set-cookie")
    assert header.startswith("oauth_csrf_clio=")
    assert "Max-Age=300" in header
    assert "HttpOnly" in header


def test_global_key_has_no_instance(codec):
    decoded = codec.decode(codec.encode(CookieJar(), ProviderKey("clio"), {"instanceKey": "x"}))
    assert decoded["providerKey"] == "clio"
    assert "instanceKey" not in decoded


def test_preserve_flag_in_provider_key(codec):
    decoded = codec.decode(
        codec.encode(CookieJar(), ProviderKey("clio", "acme", preserve=True))
    )
    assert decoded["providerKey"] == "clio:acme:preserve"
    assert decoded["instanceKey"] == "acme"


def test_caller_cannot_override_csrf(codec):
    jar = CookieJar()
    decoded = codec.decode(
        codec.encode(jar, ProviderKey("clio"), {"csrf": "mine", "providerKey": "azure"})
    )
    assert decoded["csrf"] != "mine"
    assert decoded["providerKey"] == "clio"


def test_fresh_csrf_per_login(codec):
    a = codec.decode(codec.encode(CookieJar(), ProviderKey("clio")))
    b = codec.decode(codec.encode(CookieJar(), ProviderKey("clio")))
    assert a["csrf"] != b["csrf"]


def test_encoded_state_is_url_safe(codec):
    raw = codec.encode(CookieJar(), ProviderKey("clio"), {"note": "a b&c=d?"})
    assert all(c.isalnum() or c in "-_" for c in raw)


@pytest.mark.parametrize("bad_state", [["a"], "text", 42, ("a", "b")])
def test_non_dict_state_rejected(codec, bad_state):
    with pytest.raises(TypeError):
        codec.encode(CookieJar(), ProviderKey("clio"), bad_state)


@pytest.mark.parametrize(
    "raw",
    [
        "%%%not-base64",
        "bm90IGpzb24",  # "not json"
        _b64(["csrf", "providerKey"]),
        _b64({"csrf": "x"}),
        _b64({"providerKey": "clio"}),
        _b64({"csrf": 1, "providerKey": "clio"}),
    ],
)
def test_decode_rejects_malformed(codec, raw):
    with pytest.raises(MalformedState) as exc_info:
        codec.decode(raw)
    assert exc_info.value.status_code == 400


def test_verify_succeeds_exactly_once(codec):
    jar = CookieJar()
    decoded = codec.decode(codec.encode(jar, ProviderKey("clio")))

    codec.verify(jar, decoded)
    assert jar.get("oauth_csrf_clio") is None

    with pytest.raises(CsrfMismatch) as exc_info:
        codec.verify(jar, decoded)
    assert exc_info.value.status_code == 401


def test_mismatch_still_consumes_cookie(codec):
    jar = CookieJar()
    decoded = codec.decode(codec.encode(jar, ProviderKey("clio")))
    forged = dict(decoded, csrf="forged")

    with pytest.raises(CsrfMismatch):
        codec.verify(jar, forged)
    assert jar.get("oauth_csrf_clio") is None
    assert jar.staged()["oauth_csrf_clio"] is None


def test_missing_cookie(codec):
    decoded = codec.decode(codec.encode(CookieJar(), ProviderKey("clio")))
    with pytest.raises(CsrfMismatch):
        codec.verify(CookieJar(), decoded)
