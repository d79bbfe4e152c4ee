"""Exceptions raised by prom-dns-http-sd."""


class PromDNSHTTPSDError(Exception):
    """Base exception for prom-dns-http-sd."""


class ConfigError(PromDNSHTTPSDError):
    """Raised when the config file is unreadable or malformed."""


class ClientError(PromDNSHTTPSDError):
    """Raised when a provider client cannot be constructed."""


class CredentialError(ClientError):
    """Raised when provider credentials cannot be acquired."""


class ProviderError(PromDNSHTTPSDError):
    """Raised when listing zones or records fails."""


class FilterCompileError(ProviderError):
    """Raised when a rule filter is not a valid regular expression."""


class SerializationError(PromDNSHTTPSDError):
    """Raised when a document cannot be encoded to JSON."""
