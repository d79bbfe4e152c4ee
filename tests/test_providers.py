"""Unit tests for the provider interface helpers and registry."""

import re

import pytest

from prom_dns_http_sd.config import Config, ProviderConfig
from prom_dns_http_sd.errors import ClientError, FilterCompileError, ProviderError
from prom_dns_http_sd.providers import (
    compile_filters,
    create_client,
    matches_any,
    register_provider,
    supported_providers,
)
from prom_dns_http_sd.providers.yandexcloud import YandexCloudClient

from provider_mocks import MockDNSClient

# =============================================================================
# Filter Helpers
# =============================================================================


def test_compile_filters_preserves_order() -> None:
    patterns = compile_filters(["^web-.*", "^api-.*"])
    assert all(isinstance(p, re.Pattern) for p in patterns)
    assert [p.pattern for p in patterns] == ["^web-.*", "^api-.*"]


def test_compile_filters_invalid_pattern_raises() -> None:
    """Invalid regex raises FilterCompileError, which is a ProviderError."""
    with pytest.raises(FilterCompileError, match=r"\(unclosed"):
        compile_filters(["^ok$", "(unclosed"])
    assert issubclass(FilterCompileError, ProviderError)


def test_matches_any_is_logical_or() -> None:
    """A name matches when any filter matches."""
    patterns = compile_filters(["^web-.*", "^api-.*"])

    assert matches_any("web-1", patterns)
    assert matches_any("api-1", patterns)
    assert not matches_any("db-1", patterns)


def test_matches_any_is_unanchored_search() -> None:
    """Patterns without anchors match anywhere in the name."""
    patterns = compile_filters(["example"])
    assert matches_any("web.example.com.", patterns)


def test_matches_any_without_filters_matches_nothing() -> None:
    assert not matches_any("web-1", [])


# =============================================================================
# Provider Registry
# =============================================================================


def _config(provider_type: str, **metadata) -> Config:
    return Config(provider=ProviderConfig(type=provider_type, metadata=metadata))


def test_yandex_cloud_is_registered() -> None:
    assert "yandex-cloud/yandex" in supported_providers()


def test_create_client_unknown_type() -> None:
    with pytest.raises(ClientError, match="Unsupported provider type: 'route53'"):
        create_client(_config("route53"))


def test_create_client_dispatches_on_type() -> None:
    """Registered factories receive the config and credential path."""
    calls = []
    client = MockDNSClient()

    def factory(config, credentials_path):
        calls.append((config, credentials_path))
        return client

    register_provider("test/mock", factory)
    config = _config("test/mock")

    assert create_client(config, "/etc/key.json") is client
    assert calls == [(config, "/etc/key.json")]


def test_create_client_yandex_cloud_instance_identity() -> None:
    """Without a key path the Yandex client uses the instance service account."""
    client = create_client(_config("yandex-cloud/yandex", folderIds=["f1", "f2"]))

    assert isinstance(client, YandexCloudClient)
    assert client.folder_ids == ["f1", "f2"]
    client.close()
