"""Live tests against the Yandex Cloud DNS API.

=============================================================================
Test Prerequisites
=============================================================================

- Set PROM_DNS_HTTP_SD_RUN_YC_TESTS=1 to enable these tests
- YC_FOLDER_IDS: comma-separated folder IDs holding at least one DNS zone
- YC_AUTH_JSON_FILE_PATH: service-account authorized key (optional; the
  instance service account is used when unset)

The tests only read zones and record sets; nothing is modified.

=============================================================================
"""

import os

import pytest

from prom_dns_http_sd.config import parse_config
from prom_dns_http_sd.engine import build_documents
from prom_dns_http_sd.providers import create_client

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.getenv("PROM_DNS_HTTP_SD_RUN_YC_TESTS") != "1",
        reason="set PROM_DNS_HTTP_SD_RUN_YC_TESTS=1 to run live Yandex Cloud tests",
    ),
]


def _folder_ids():
    return [f.strip() for f in os.getenv("YC_FOLDER_IDS", "").split(",") if f.strip()]


@pytest.fixture
def client():
    folder_ids = _folder_ids()
    if not folder_ids:
        pytest.skip("YC_FOLDER_IDS is not set")
    config = parse_config(
        {
            "provider": {"type": "yandex-cloud/yandex", "metadata": {"folderIds": folder_ids}},
            "rules": [{"path": "/all", "port": 80, "filters": [".*"]}],
        }
    )
    client = create_client(config, os.getenv("YC_AUTH_JSON_FILE_PATH") or None)
    yield config, client
    client.close()


def test_lists_zones_and_records(client) -> None:
    config, dns = client

    zones = dns.list_zones()
    assert zones, "expected at least one zone in the configured folders"
    for zone in zones:
        assert zone.id
        records = zone.list_records(".*")
        assert all(r.name for r in records)

    documents = build_documents(config, dns)
    assert len(documents["/all"]) == len(zones)
