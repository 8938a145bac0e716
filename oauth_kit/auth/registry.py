"""Provider registry.

Holds provider configurations keyed by ``provider`` or ``provider:instance``.
Populated once at startup and passed to the components that need it.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from oauth_kit.auth.crypto import Cipher
from oauth_kit.auth.errors import NotRegistered
from oauth_kit.auth.keys import ProviderKey, namespace
from oauth_kit.auth.providers import ProviderConfig

log = logging.getLogger("oauth-kit.registry")


class ProviderStore:
    """Keyed store of provider configs sharing one refresh-token cipher."""

    def __init__(self, cipher: Cipher):
        self.cipher = cipher
        self._configs: dict[str, ProviderConfig] = {}

    def register(
        self,
        provider: str,
        config: ProviderConfig,
        *,
        instance_key: Optional[str] = None,
    ) -> ProviderConfig:
        """Store a config, replacing any existing entry for the same key.

        Returns:
            The stored config, with the store's cipher attached
        """
        # Validates the provider/instance pair.
        key = str(ProviderKey(provider, instance_key))
        stored = dataclasses.replace(config, cipher=self.cipher)
        if key in self._configs:
            log.info("Replacing OAuth provider registration: %s", key)
        self._configs[key] = stored
        return stored

    def get(self, provider: str, instance_key: Optional[str] = None) -> ProviderConfig:
        """Get a registered config.

        Raises:
            NotRegistered: If nothing is registered under the key
        """
        key = namespace(provider, instance_key)
        try:
            return self._configs[key]
        except KeyError:
            raise NotRegistered(key) from None

    def has(self, provider: str, instance_key: Optional[str] = None) -> bool:
        return namespace(provider, instance_key) in self._configs

    def keys(self) -> list[str]:
        return list(self._configs)

    def instances(self, provider: str) -> list[Optional[str]]:
        """List registered instance keys for a provider (None for global)."""
        found: list[Optional[str]] = []
        for key in self._configs:
            parsed = ProviderKey.parse(key)
            if parsed.provider == provider:
                found.append(parsed.instance_key)
        return found
