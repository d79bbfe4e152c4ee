"""DNS provider interface shared by every backend."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..config import Config
from ..errors import ClientError, FilterCompileError

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class DNSRecord:
    """A DNS record set as returned by a provider."""

    name: str
    type: str = ""
    ttl: int = 0
    data: Tuple[str, ...] = ()


# =============================================================================
# Provider Interface
# =============================================================================


class Zone(ABC):
    """A DNS zone exposed by a provider."""

    @property
    @abstractmethod
    def id(self) -> str:
        """Return the provider's zone identifier."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the zone's DNS name."""
        pass

    @abstractmethod
    def list_records(self, *filters: str) -> List[DNSRecord]:
        """Return records whose name matches at least one filter pattern.

        Raises FilterCompileError for an invalid pattern and ProviderError
        when the backend call fails.
        """
        pass


class DNSClient(ABC):
    """A provider client scoped to the folders/accounts from the config."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def list_zones(self, *zone_names: str) -> List[Zone]:
        """Return zones visible to the client, optionally narrowed by name."""
        pass

    def close(self) -> None:
        """Release network resources. Default implementation does nothing."""


# =============================================================================
# Filter Helpers
# =============================================================================


def compile_filters(filters: Iterable[str]) -> List[re.Pattern]:
    """Compile rule filters in order, failing on the first invalid one."""
    patterns: List[re.Pattern] = []
    for item in filters:
        try:
            patterns.append(re.compile(item))
        except re.error as e:
            raise FilterCompileError(f"invalid filter pattern '{item}': {e}") from e
    return patterns


def matches_any(name: str, patterns: List[re.Pattern]) -> bool:
    """Check if a record name matches any pattern (unanchored search)."""
    for pattern in patterns:
        if pattern.search(name):
            return True
    return False


# =============================================================================
# Provider Registry
# =============================================================================

ClientFactory = Callable[[Config, Optional[str]], DNSClient]

_REGISTRY: Dict[str, ClientFactory] = {}


def register_provider(provider_type: str, factory: ClientFactory) -> None:
    """Register a client factory for a `provider.type` value."""
    _REGISTRY[provider_type] = factory


def supported_providers() -> List[str]:
    return sorted(_REGISTRY)


def create_client(config: Config, credentials_path: Optional[str] = None) -> DNSClient:
    """Factory function to create the client for the configured provider."""
    factory = _REGISTRY.get(config.provider.type)
    if factory is None:
        raise ClientError(
            f"Unsupported provider type: '{config.provider.type}'. "
            f"Supported providers: {', '.join(supported_providers())}"
        )
    return factory(config, credentials_path)
