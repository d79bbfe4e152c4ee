"""Published discovery state shared between refresh triggers and HTTP readers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .config import Config
from .providers import DNSClient

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class SDConfig:
    """One Prometheus HTTP SD target group."""

    targets: Tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"targets": list(self.targets)}
        if self.labels:
            data["labels"] = dict(self.labels)
        return data


DocumentSet = Mapping[str, Tuple[SDConfig, ...]]

EMPTY_DOCUMENTS: DocumentSet = MappingProxyType({})


def freeze_documents(documents: Mapping[str, Iterable[SDConfig]]) -> DocumentSet:
    """Return a read-only copy of a path -> SDConfig list mapping."""
    return MappingProxyType({path: tuple(items) for path, items in documents.items()})


@dataclass(frozen=True)
class Snapshot:
    """The config, client and documents published together."""

    config: Optional[Config] = None
    client: Optional[DNSClient] = None
    documents: DocumentSet = field(default_factory=lambda: EMPTY_DOCUMENTS)


# =============================================================================
# Store
# =============================================================================


class DocumentStore:
    """Holds the current Snapshot behind a single lock.

    Writers replace the whole snapshot; readers always see one complete
    snapshot, never a mix of two.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._version = 0

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    @property
    def version(self) -> int:
        """Number of publishes so far."""
        with self._lock:
            return self._version

    def get(self, path: str) -> Optional[Tuple[SDConfig, ...]]:
        """Return the SD configs published under `path`, or None if unknown."""
        with self._lock:
            documents = self._snapshot.documents
        return documents.get(path)

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._snapshot.documents)

    def publish(
        self,
        config: Optional[Config],
        client: Optional[DNSClient],
        documents: Mapping[str, Iterable[SDConfig]],
    ) -> Snapshot:
        """Atomically replace the published config, client and documents."""
        snapshot = Snapshot(config=config, client=client, documents=freeze_documents(documents))
        with self._lock:
            self._snapshot = snapshot
            self._version += 1
        return snapshot
