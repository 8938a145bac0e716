"""Instance resolution for protected routes.

A declaration either names an instance, supplies a resolver callback that
picks one per request, or is a bare provider name. Bare providers use the
global session when one exists and otherwise fall back to the first scoped
session found in the request's ``Cookie`` header.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from fastapi import Request

from oauth_kit.auth.cookies import CookieJar
from oauth_kit.auth.keys import ProviderKey
from oauth_kit.auth.providers import maybe_await
from oauth_kit.auth.tokens import TokenValidator, ValidationResult

log = logging.getLogger("oauth-kit.resolver")

InstanceResolverFn = Callable[[Request], Union[Optional[str], Awaitable[Optional[str]]]]


@dataclass(frozen=True)
class ProviderDeclaration:
    """One provider required by a protected route."""

    provider: str
    instance_key: Optional[str] = None
    resolver: Optional[InstanceResolverFn] = None
    allowed_instances: Optional[tuple[str, ...]] = None

    def __post_init__(self):
        if self.instance_key is not None and self.resolver is not None:
            raise ValueError("declare either instance_key or resolver, not both")
        # Validates names.
        ProviderKey(self.provider, self.instance_key)

    @property
    def is_bare(self) -> bool:
        return self.instance_key is None and self.resolver is None

    @classmethod
    def coerce(cls, value: Union[str, ProviderDeclaration, dict[str, Any]]) -> ProviderDeclaration:
        """Accept ``"clio"``, ``"clio:acme"``, a dict or a declaration."""
        if isinstance(value, ProviderDeclaration):
            return value
        if isinstance(value, str):
            key = ProviderKey.parse(value)
            return cls(key.provider, key.instance_key)
        if isinstance(value, dict):
            return cls(**value)
        raise TypeError(f"cannot build a provider declaration from {type(value).__name__}")


def with_instance_keys(
    provider: str,
    instance_keys: Sequence[str],
    resolver: InstanceResolverFn,
) -> ProviderDeclaration:
    """Declare a resolver restricted to a known set of instance keys."""
    return ProviderDeclaration(
        provider=provider,
        resolver=resolver,
        allowed_instances=tuple(instance_keys),
    )


def discover_instance(jar: CookieJar, provider: str) -> Optional[str]:
    """Find a scoped session for ``provider`` in the raw Cookie header.

    The first match wins when several instances are present.
    """
    if jar.get(f"{provider}_refresh_token"):
        return None
    if not jar.raw_header:
        return None
    pattern = re.compile(rf"(?:^|[;\s]){re.escape(provider)}:([^_;=\s]+)_refresh_token=")
    match = pattern.search(jar.raw_header)
    return match.group(1) if match else None


@dataclass
class Resolution:
    instance_key: Optional[str]
    result: ValidationResult


class InstanceResolver:
    def __init__(self, validator: TokenValidator):
        self.validator = validator

    async def resolve_key(self, request: Request, decl: ProviderDeclaration) -> Optional[str]:
        """Instance key from an explicit declaration or its resolver callback."""
        if decl.instance_key is not None:
            return decl.instance_key
        if decl.resolver is None:
            return None
        instance_key = await maybe_await(decl.resolver(request))
        if instance_key is not None and decl.allowed_instances is not None:
            if instance_key not in decl.allowed_instances:
                raise ValueError(
                    f'Resolver for "{decl.provider}" returned unknown instance "{instance_key}"'
                )
        return instance_key or None

    async def resolve(
        self, request: Request, jar: CookieJar, decl: ProviderDeclaration
    ) -> Resolution:
        """Pick the instance for a declaration and validate its session."""
        instance_key = await self.resolve_key(request, decl)
        result = self.validator.inspect(jar, decl.provider, instance_key)

        if not result.present and decl.is_bare:
            discovered = discover_instance(jar, decl.provider)
            if discovered:
                log.debug("Discovered %s instance %s", decl.provider, discovered)
                instance_key = discovered
                result = self.validator.inspect(jar, decl.provider, instance_key)

        return Resolution(instance_key=instance_key, result=result)
