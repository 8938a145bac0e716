"""Provider key encoding.

A provider key names one logical OAuth session: a provider, an optional
tenant instance, and a flag telling the callback whether to keep the
provider's global cookies alive. Keys render as ``provider``,
``provider:instance``, ``provider:preserve`` or
``provider:instance:preserve``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DELIMITER = ":"
PRESERVE = "preserve"


@dataclass(frozen=True)
class ProviderKey:
    """Parsed provider key.

    Attributes:
        provider: Provider identifier (e.g. ``clio``)
        instance_key: Tenant instance, or None for the global session
        preserve: Keep global cookies when a scoped login completes
    """

    provider: str
    instance_key: Optional[str] = None
    preserve: bool = False

    def __post_init__(self):
        if not self.provider:
            raise ValueError("provider must be a non-empty string")
        if DELIMITER in self.provider:
            raise ValueError(f"provider may not contain '{DELIMITER}'")
        if self.instance_key is not None:
            if not self.instance_key:
                raise ValueError("instance_key must be non-empty when given")
            if DELIMITER in self.instance_key:
                raise ValueError(f"instance_key may not contain '{DELIMITER}'")
            if self.instance_key == PRESERVE:
                raise ValueError(f"'{PRESERVE}' is reserved and cannot be an instance key")

    @property
    def namespace(self) -> str:
        """Cookie namespace, which never carries the preserve flag."""
        return namespace(self.provider, self.instance_key)

    @classmethod
    def parse(cls, raw: str) -> ProviderKey:
        """Parse a rendered provider key.

        Segments beyond the third are ignored, matching how keys written
        by older clients were read.

        Raises:
            ValueError: If the key is empty or names a reserved instance
        """
        parts = raw.split(DELIMITER)
        if len(parts) == 1:
            return cls(parts[0])
        if len(parts) == 2:
            if parts[1] == PRESERVE:
                return cls(parts[0], preserve=True)
            return cls(parts[0], parts[1])
        if len(parts) == 3 and parts[2] == PRESERVE:
            return cls(parts[0], parts[1], preserve=True)
        return cls(parts[0], parts[1])

    def __str__(self) -> str:
        parts = [self.provider]
        if self.instance_key:
            parts.append(self.instance_key)
        if self.preserve:
            parts.append(PRESERVE)
        return DELIMITER.join(parts)


def namespace(provider: str, instance_key: Optional[str] = None) -> str:
    """Render the cookie namespace for a provider/instance pair."""
    return f"{provider}{DELIMITER}{instance_key}" if instance_key else provider
