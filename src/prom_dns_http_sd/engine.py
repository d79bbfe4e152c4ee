"""Refresh engine: rebuilds provider clients and recomputes SD documents."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .config import Config, load_config, rule_paths
from .errors import ProviderError
from .providers import DNSClient, Zone, create_client
from .store import DocumentSet, DocumentStore, SDConfig

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[str], Config]
ClientFactory = Callable[[Config, Optional[str]], DNSClient]


# =============================================================================
# Document Computation
# =============================================================================


def format_target(name: str, port: int) -> str:
    return f"{name}:{port}"


def build_documents(config: Config, client: DNSClient) -> Dict[str, List[SDConfig]]:
    """Compute the path -> SD configs mapping for one refresh cycle.

    Each (rule, zone) pair yields exactly one SDConfig, even with no targets.
    A failed zone listing leaves the cycle without zones; a failed record
    listing drops only that (rule, zone) pair.
    """
    try:
        zones: List[Zone] = client.list_zones(*config.zones)
    except ProviderError as e:
        logger.error(f"Failed to list zones from {client.name}: {e}")
        zones = []

    documents: Dict[str, List[SDConfig]] = {}
    for rule in config.rules:
        sds = documents.setdefault(rule.path, [])

        for zone in zones:
            try:
                records = zone.list_records(*rule.filters)
            except ProviderError as e:
                logger.error(f"Failed to list records of zone '{zone.name}' for {rule.path}: {e}")
                continue

            targets = tuple(format_target(record.name, rule.port) for record in records)
            sds.append(SDConfig(targets=targets, labels=rule.labels))

    return documents


# =============================================================================
# Refresh Engine
# =============================================================================


class RefreshEngine:
    """Owns config/client lifecycle and publishes results into a DocumentStore.

    Reconfigure and recompute run one at a time; concurrent callers queue on
    an engine-wide lock.
    """

    def __init__(
        self,
        *,
        store: DocumentStore,
        config_path: str,
        credentials_path: Optional[str] = None,
        config_loader: ConfigLoader = load_config,
        client_factory: ClientFactory = create_client,
    ):
        self.store = store
        self.config_path = config_path
        self.credentials_path = credentials_path or None
        self._load_config = config_loader
        self._create_client = client_factory
        self._lock = threading.Lock()

    def reconfigure(self) -> None:
        """Load the config file and build a new client for it.

        Raises ConfigError or ClientError; on failure the published state is
        left untouched.
        """
        with self._lock:
            config = self._load_config(self.config_path)
            client = self._create_client(config, self.credentials_path)

            previous = self.store.snapshot()
            self.store.publish(config, client, previous.documents)
            logger.info(
                f"Loaded config {self.config_path}: provider {client.name}, "
                f"{len(config.rules)} rule(s), paths: {', '.join(rule_paths(config)) or '-'}"
            )

            if previous.client is not None and previous.client is not client:
                previous.client.close()

    def recompute(self) -> Optional[DocumentSet]:
        """Recompute and publish documents from the current config and client."""
        with self._lock:
            snapshot = self.store.snapshot()
            if snapshot.config is None or snapshot.client is None:
                logger.warning("No valid config loaded yet, skipping targets update")
                return None

            documents = build_documents(snapshot.config, snapshot.client)
            published = self.store.publish(snapshot.config, snapshot.client, documents)

            total = sum(len(sd.targets) for sds in documents.values() for sd in sds)
            logger.info(
                f"Updated targets #{self.store.version}: {total} target(s) on "
                f"{', '.join(self.store.paths()) or 'no paths'}"
            )
            return published.documents

    def reload(self) -> Optional[DocumentSet]:
        """Reconfigure, then recompute with the new config."""
        self.reconfigure()
        return self.recompute()
