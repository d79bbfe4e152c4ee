"""Declarative discovery policy: provider, zones and relabeling rules.

Example config file:

    provider:
      type: yandex-cloud/yandex
      metadata:
        folderIds: ["b1g..."]
    zones: []
    rules:
      - path: /node-exporter
        port: 9100
        filters: ["^web-.*", "^api-.*"]
        labels:
          job: node

JSON files are accepted too, since JSON is a subset of YAML.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ProviderConfig:
    """Backend selection and its opaque settings."""

    type: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class RuleConfig:
    """Maps records matching any filter to `host:port` targets under a path."""

    path: str
    port: int
    filters: Tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Config:
    """A loaded config file. Reloading produces a new instance."""

    provider: ProviderConfig
    zones: Tuple[str, ...] = ()
    rules: Tuple[RuleConfig, ...] = ()


# =============================================================================
# Loading
# =============================================================================


def load_config(path: str) -> Config:
    """Read and validate the config file at `path`.

    Raises ConfigError when the file cannot be read or does not have the
    expected shape. Filter patterns are not compiled here.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, IOError) as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    config = parse_config(raw)
    logger.debug(
        f"Loaded config from {path}: provider={config.provider.type}, "
        f"{len(config.zones)} zone(s), {len(config.rules)} rule(s)"
    )
    return config


def parse_config(raw: Any) -> Config:
    """Build a Config from already-decoded YAML/JSON data."""
    if not isinstance(raw, dict):
        raise ConfigError("config must be a mapping")

    provider = _parse_provider(raw.get("provider"))

    zones = raw.get("zones")
    if zones is None:
        zones = []
    if not isinstance(zones, list) or not all(isinstance(z, str) for z in zones):
        raise ConfigError("zones must be a list of strings")

    rules = raw.get("rules")
    if rules is None:
        rules = []
    if not isinstance(rules, list):
        raise ConfigError("rules must be a list")

    return Config(
        provider=provider,
        zones=tuple(zones),
        rules=tuple(_parse_rule(i, item) for i, item in enumerate(rules)),
    )


def _parse_provider(raw: Any) -> ProviderConfig:
    if not isinstance(raw, dict):
        raise ConfigError("provider section is required and must be a mapping")

    provider_type = raw.get("type")
    if not isinstance(provider_type, str) or not provider_type.strip():
        raise ConfigError("provider.type is required and must be a string")

    metadata = raw.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ConfigError("provider.metadata must be a mapping")

    return ProviderConfig(
        type=provider_type.strip(),
        metadata=MappingProxyType(dict(metadata)),
    )


def _parse_rule(index: int, raw: Any) -> RuleConfig:
    where = f"rules[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a mapping")

    path = raw.get("path")
    if not isinstance(path, str) or not path.startswith("/"):
        raise ConfigError(f"{where}.path is required and must start with '/'")

    port = raw.get("port")
    # bool is an int subclass; `port: true` is a typo, not a port.
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigError(f"{where}.port is required and must be an integer")
    if not 0 < port < 65536:
        raise ConfigError(f"{where}.port must be between 1 and 65535, got {port}")

    filters = raw.get("filters")
    if filters is None:
        filters = []
    if not isinstance(filters, list) or not all(isinstance(f, str) for f in filters):
        raise ConfigError(f"{where}.filters must be a list of strings")

    labels = raw.get("labels")
    if labels is None:
        labels = {}
    if not isinstance(labels, dict):
        raise ConfigError(f"{where}.labels must be a mapping")
    if any(v is None or isinstance(v, (dict, list)) for v in labels.values()):
        raise ConfigError(f"{where}.labels values must be scalars")

    return RuleConfig(
        path=path,
        port=port,
        filters=tuple(filters),
        labels=MappingProxyType({str(k): str(v) for k, v in labels.items()}),
    )


def rule_paths(config: Config) -> List[str]:
    """Return distinct rule paths in declaration order."""
    seen: Dict[str, None] = {}
    for rule in config.rules:
        seen.setdefault(rule.path, None)
    return list(seen)
