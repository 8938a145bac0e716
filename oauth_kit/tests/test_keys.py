"""Tests for provider key encoding."""

import pytest

from oauth_kit.auth.keys import ProviderKey, namespace


@pytest.mark.parametrize(
    "key",
    [
        ProviderKey("clio"),
        ProviderKey("clio", "smithlaw"),
        ProviderKey("clio", preserve=True),
        ProviderKey("clio", "smithlaw", preserve=True),
        ProviderKey("azure", "dev-tenant.1"),
    ],
)
def test_parse_format_round_trip(key):
    assert ProviderKey.parse(str(key)) == key


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("clio", ProviderKey("clio")),
        ("clio:smithlaw", ProviderKey("clio", "smithlaw")),
        ("clio:preserve", ProviderKey("clio", preserve=True)),
        ("clio:smithlaw:preserve", ProviderKey("clio", "smithlaw", preserve=True)),
    ],
)
def test_parse(raw, expected):
    assert ProviderKey.parse(raw) == expected


def test_parse_malformed_keeps_first_two_segments():
    assert ProviderKey.parse("clio:smithlaw:other") == ProviderKey("clio", "smithlaw")


def test_preserve_is_reserved():
    with pytest.raises(ValueError):
        ProviderKey("clio", "preserve")


@pytest.mark.parametrize("provider,instance", [("cl:io", None), ("clio", "a:b"), ("", None)])
def test_invalid_parts_rejected(provider, instance):
    with pytest.raises(ValueError):
        ProviderKey(provider, instance)


def test_namespace_drops_preserve_flag():
    assert ProviderKey("clio", "smithlaw", preserve=True).namespace == "clio:smithlaw"
    assert ProviderKey("clio", preserve=True).namespace == "clio"
    assert namespace("azure") == "azure"
    assert namespace("azure", "dev") == "azure:dev"
