"""Database providers and provider detection."""

from typing import Dict, Type

from schemashift.errors import UnsupportedProviderError
from schemashift.providers.base import Provider
from schemashift.providers.mysql import MySQLProvider
from schemashift.providers.postgresql import PostgreSQLProvider
from schemashift.providers.sqlite import SQLiteProvider

PROVIDERS: Dict[str, Type[Provider]] = {
    "postgresql": PostgreSQLProvider,
    "mysql": MySQLProvider,
    "sqlite": SQLiteProvider,
}

# URL scheme -> provider name
URL_SCHEMES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "mysql": "mysql",
    "file": "sqlite",
    "sqlite": "sqlite",
}


def get_provider(name: str) -> Provider:
    """Get a provider instance by name.

    Raises:
        UnsupportedProviderError: If the name is not a known provider
    """
    if name not in PROVIDERS:
        raise UnsupportedProviderError(
            f"Unsupported provider '{name}'. Valid providers: {', '.join(PROVIDERS)}"
        )
    return PROVIDERS[name]()


def detect_provider(url: str) -> str:
    """Detect the provider name from a connection URL scheme.

    Raises:
        UnsupportedProviderError: If the scheme is not recognized
    """
    if url == ":memory:":
        return "sqlite"
    scheme = url.split(":", 1)[0].lower() if ":" in url else ""
    if scheme not in URL_SCHEMES:
        raise UnsupportedProviderError(f"Unsupported connection URL scheme in '{url}'")
    return URL_SCHEMES[scheme]


__all__ = [
    "Provider",
    "PostgreSQLProvider",
    "MySQLProvider",
    "SQLiteProvider",
    "PROVIDERS",
    "get_provider",
    "detect_provider",
]
