"""Yandex Cloud DNS provider.

Zones and record sets are read through the Cloud DNS REST API. The client is
scoped to the folders listed in `provider.metadata.folderIds`:

    provider:
      type: yandex-cloud/yandex
      metadata:
        folderIds:
          - b1gxxxxxxxxxxxxxxxxx

Credentials come either from a service-account authorized key file (the
`iam.json` produced by `yc iam key create`) or, when no key file is given,
from the service account attached to the compute instance.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

import jwt
import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..config import Config
from ..errors import ClientError, CredentialError, ProviderError
from .base import DNSClient, DNSRecord, Zone, compile_filters, matches_any

logger = logging.getLogger(__name__)

PROVIDER_NAME = "yandex-cloud/yandex"

DNS_API_URL = "https://dns.api.cloud.yandex.net/dns/v1"
IAM_TOKEN_URL = "https://iam.api.cloud.yandex.net/iam/v1/tokens"
METADATA_TOKEN_URL = (
    "http://169.254.169.254/computeMetadata/v1/instance/service-accounts/default/token"
)

# IAM tokens live up to 12 hours; refresh hourly and a minute early.
TOKEN_MAX_AGE_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_PAGE_SIZE = 1000


# =============================================================================
# Credentials
# =============================================================================


class IAMTokenSource(ABC):
    """Issues and caches IAM tokens used as bearer credentials."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._lock = threading.Lock()
        self._token = ""
        self._valid_until = 0.0

    def token(self) -> str:
        """Return a cached IAM token, fetching a new one when it is about to expire."""
        with self._lock:
            now = time.time()
            if not self._token or now >= self._valid_until:
                token, lifetime = self._fetch()
                lifetime = min(lifetime, TOKEN_MAX_AGE_SECONDS)
                self._token = token
                self._valid_until = now + max(0, lifetime - TOKEN_REFRESH_MARGIN_SECONDS)
            return self._token

    @abstractmethod
    def _fetch(self) -> Tuple[str, int]:
        """Return a fresh token and its lifetime in seconds."""
        pass


class ServiceAccountKeyCredentials(IAMTokenSource):
    """Exchanges a PS256-signed JWT for an IAM token."""

    def __init__(self, key: Dict[str, Any], **kwargs: Any):
        super().__init__(**kwargs)
        for field_name in ("id", "service_account_id", "private_key"):
            if not isinstance(key.get(field_name), str) or not key[field_name]:
                raise CredentialError(f"authorized key is missing '{field_name}'")
        self._key_id = key["id"]
        self._service_account_id = key["service_account_id"]
        self._private_key = _load_private_key(self._key_id, key["private_key"])

    def _fetch(self) -> Tuple[str, int]:
        now = int(time.time())
        payload = {
            "aud": IAM_TOKEN_URL,
            "iss": self._service_account_id,
            "iat": now,
            "exp": now + TOKEN_MAX_AGE_SECONDS,
        }
        try:
            encoded = jwt.encode(
                payload,
                self._private_key,
                algorithm="PS256",
                headers={"kid": self._key_id},
            )
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise CredentialError(f"failed to sign JWT for key {self._key_id}: {e}") from e

        try:
            response = self._session.post(
                IAM_TOKEN_URL, json={"jwt": encoded}, timeout=self._timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            raise CredentialError(f"failed to exchange JWT for IAM token: {e}") from e

        token = data.get("iamToken") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise CredentialError("IAM token response is missing 'iamToken'")
        logger.debug(f"Issued IAM token for service account {self._service_account_id}")
        return token, TOKEN_MAX_AGE_SECONDS


class InstanceServiceAccountCredentials(IAMTokenSource):
    """Reads tokens of the instance's service account from the metadata service."""

    def _fetch(self) -> Tuple[str, int]:
        try:
            response = self._session.get(
                METADATA_TOKEN_URL,
                headers={"Metadata-Flavor": "Google"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            raise CredentialError(f"failed to get instance service account token: {e}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise CredentialError("metadata token response is missing 'access_token'")
        try:
            lifetime = int(data.get("expires_in", TOKEN_MAX_AGE_SECONDS))
        except (TypeError, ValueError):
            lifetime = TOKEN_MAX_AGE_SECONDS
        return token, lifetime


def _strip_key_preamble(private_key: str) -> str:
    """Drop the comment line newer key files put before the PEM block."""
    start = private_key.find("-----BEGIN")
    return private_key[start:] if start > 0 else private_key


def _load_private_key(key_id: str, private_key: str) -> Any:
    try:
        return serialization.load_pem_private_key(
            _strip_key_preamble(private_key).encode("utf-8"), password=None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError(f"failed to parse private key {key_id}: {e}") from e


def read_authorized_key(path: str) -> Dict[str, Any]:
    """Load a service-account authorized key JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            key = json.load(f)
    except (OSError, IOError, json.JSONDecodeError) as e:
        raise CredentialError(f"failed to read authorized key file {path}: {e}") from e
    if not isinstance(key, dict):
        raise CredentialError(f"authorized key file {path} must contain a JSON object")
    return key


def get_folder_ids(config: Config) -> List[str]:
    """Return `provider.metadata.folderIds` after checking its type."""
    value = config.provider.metadata.get("folderIds")
    if not isinstance(value, list):
        raise ClientError(
            "incorrect provider definition, provider.metadata.folderIds field required"
        )

    folder_ids: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ClientError("incorrect provider.metadata.folderIds field type")
        folder_ids.append(item)
    return folder_ids


# =============================================================================
# Client
# =============================================================================


class YandexCloudZone(Zone):
    """A Cloud DNS zone; records are fetched on demand."""

    def __init__(self, client: "YandexCloudClient", data: Dict[str, Any]):
        self._client = client
        self._data = data

    @property
    def id(self) -> str:
        return str(self._data.get("id") or "")

    @property
    def name(self) -> str:
        return str(self._data.get("zone") or self._data.get("name") or "")

    def list_records(self, *filters: str) -> List[DNSRecord]:
        patterns = compile_filters(filters)

        records: List[DNSRecord] = []
        for item in self._client.paginate(f"/zones/{self.id}:listRecordSets", "recordSets"):
            name = item.get("name")
            if not isinstance(name, str):
                logger.warning(f"Skipping malformed record set in zone {self.name}: {item}")
                continue
            if not matches_any(name, patterns):
                continue
            records.append(_to_record(item))
        logger.debug(f"Zone {self.name}: {len(records)} record(s) matched {len(patterns)} filter(s)")
        return records


class YandexCloudClient(DNSClient):
    """Cloud DNS client scoped to a set of folders."""

    def __init__(
        self,
        folder_ids: List[str],
        credentials: IAMTokenSource,
        *,
        session: Optional[requests.Session] = None,
        api_url: str = DNS_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.folder_ids = list(folder_ids)
        self._credentials = credentials
        self._session = session or requests.Session()
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout_seconds
        self._page_size = page_size

    @property
    def name(self) -> str:
        return "Yandex Cloud DNS"

    def list_zones(self, *zone_names: str) -> List[Zone]:
        # Zone names are accepted but not used for narrowing; every zone in
        # the configured folders is returned.
        if zone_names:
            logger.debug(f"Zone name filter {list(zone_names)} is not applied by {self.name}")

        zones: List[Zone] = []
        for folder_id in self.folder_ids:
            for item in self.paginate("/zones", "dnsZones", {"folderId": folder_id}):
                zones.append(YandexCloudZone(self, item))
        return zones

    def paginate(
        self, path: str, items_key: str, params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        """Yield items across all pages of a list call."""
        page_token = ""
        while True:
            query: Dict[str, Any] = dict(params or {})
            query["pageSize"] = self._page_size
            if page_token:
                query["pageToken"] = page_token

            data = self._get(path, query)
            items = data.get(items_key) or []
            if not isinstance(items, list):
                raise ProviderError(
                    f"Unexpected response format from {self.name} {path}: "
                    f"expected '{items_key}' list, got {type(items).__name__}"
                )
            for item in items:
                if isinstance(item, dict):
                    yield item

            page_token = data.get("nextPageToken") or ""
            if not page_token:
                return

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            headers = {"Authorization": f"Bearer {self._credentials.token()}"}
        except CredentialError as e:
            raise ProviderError(f"failed to authorize {self.name} request: {e}") from e

        try:
            response = self._session.get(
                f"{self._api_url}{path}",
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            raise ProviderError(f"{self.name} request {path} failed: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(
                f"Unexpected response format from {self.name} {path}: "
                f"expected object, got {type(data).__name__}"
            )
        return data

    def close(self) -> None:
        self._session.close()


def _to_record(item: Dict[str, Any]) -> DNSRecord:
    # int64 fields are encoded as strings in the REST API.
    try:
        ttl = int(item.get("ttl") or 0)
    except (TypeError, ValueError):
        ttl = 0
    data = item.get("data") or []
    return DNSRecord(
        name=item["name"],
        type=str(item.get("type") or ""),
        ttl=ttl,
        data=tuple(str(d) for d in data) if isinstance(data, list) else (),
    )


def new_client(config: Config, credentials_path: Optional[str] = None) -> YandexCloudClient:
    """Build a client for the folders in the config.

    Uses the authorized key at `credentials_path` when given, otherwise the
    instance service account.
    """
    folder_ids = get_folder_ids(config)

    session = requests.Session()
    credentials: IAMTokenSource
    if credentials_path:
        try:
            credentials = ServiceAccountKeyCredentials(
                read_authorized_key(credentials_path), session=session
            )
        except CredentialError:
            session.close()
            raise
    else:
        credentials = InstanceServiceAccountCredentials(session=session)

    return YandexCloudClient(folder_ids, credentials, session=session)
