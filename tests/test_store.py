"""Unit tests for DocumentStore and SDConfig."""

import threading

import pytest

from prom_dns_http_sd.store import EMPTY_DOCUMENTS, DocumentStore, SDConfig, Snapshot

from provider_mocks import MockDNSClient, make_config, make_rule


class TestSDConfig:
    """Tests for the wire representation of SD configs."""

    def test_to_dict_with_labels(self) -> None:
        sd = SDConfig(targets=("web-1:9100",), labels={"job": "node"})
        assert sd.to_dict() == {"targets": ["web-1:9100"], "labels": {"job": "node"}}

    def test_to_dict_omits_empty_labels(self) -> None:
        assert SDConfig(targets=("a:1",)).to_dict() == {"targets": ["a:1"]}

    def test_to_dict_keeps_empty_targets(self) -> None:
        assert SDConfig().to_dict() == {"targets": []}


def test_default_snapshot_has_no_documents() -> None:
    snapshot = Snapshot()

    assert snapshot.documents is EMPTY_DOCUMENTS
    assert dict(snapshot.documents) == {}
    assert Snapshot() == snapshot


class TestDocumentStore:
    """Tests for get/publish semantics."""

    def test_initial_snapshot_is_empty(self) -> None:
        store = DocumentStore()

        assert store.snapshot() == Snapshot()
        assert store.get("/web") is None
        assert store.paths() == []
        assert store.version == 0

    def test_publish_replaces_whole_snapshot(self) -> None:
        store = DocumentStore()
        config = make_config(make_rule("/web"))
        client = MockDNSClient()

        store.publish(config, client, {"/web": [SDConfig(targets=("a:1",))]})
        store.publish(config, client, {"/api": []})

        assert store.get("/web") is None
        assert store.get("/api") == ()
        assert store.snapshot().config is config
        assert store.snapshot().client is client
        assert store.version == 2

    def test_published_documents_are_read_only(self) -> None:
        """Mutating the input after publish does not change the store."""
        store = DocumentStore()
        documents = {"/web": [SDConfig(targets=("a:1",))]}

        store.publish(None, None, documents)
        documents["/web"].append(SDConfig(targets=("b:1",)))
        documents["/other"] = []

        assert store.get("/web") == (SDConfig(targets=("a:1",)),)
        assert store.get("/other") is None
        with pytest.raises(TypeError):
            store.snapshot().documents["/x"] = ()  # type: ignore[index]

    def test_get_unknown_path(self) -> None:
        store = DocumentStore()
        store.publish(None, None, {"/web": []})
        assert store.get("/not-configured") is None


def test_concurrent_readers_never_see_mixed_documents() -> None:
    """Readers polling during publishes observe one complete generation."""
    store = DocumentStore()
    paths = [f"/p{i}" for i in range(20)]

    def generation(n: int):
        return {p: [SDConfig(targets=(f"gen-{n}:1",))] for p in paths}

    store.publish(None, None, generation(0))
    stop = threading.Event()
    errors = []

    def reader() -> None:
        while not stop.is_set():
            documents = store.snapshot().documents
            seen = {sd.targets[0] for p in paths for sd in documents[p]}
            if len(seen) != 1:
                errors.append(seen)

    def writer() -> None:
        for n in range(1, 500):
            store.publish(None, None, generation(n))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    writer_thread.join()
    stop.set()
    for t in readers:
        t.join()

    assert errors == []
    assert store.get("/p0") == (SDConfig(targets=("gen-499:1",)),)
