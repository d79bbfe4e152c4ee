"""DNS provider backends."""

from .base import (
    DNSClient,
    DNSRecord,
    Zone,
    compile_filters,
    create_client,
    matches_any,
    register_provider,
    supported_providers,
)
from .yandexcloud import PROVIDER_NAME as YANDEX_CLOUD, new_client as new_yandex_cloud_client

register_provider(YANDEX_CLOUD, new_yandex_cloud_client)

__all__ = [
    "DNSClient",
    "DNSRecord",
    "Zone",
    "compile_filters",
    "create_client",
    "matches_any",
    "register_provider",
    "supported_providers",
]
