"""SurrealDB configuration for the revchain state store.

Environment-based settings for the connection pool backing the head
record and history tables.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class SurrealConfig:
    """SurrealDB connection configuration.

    Attributes:
        url: SurrealDB WebSocket URL (ws:// or wss://)
        namespace: Namespace holding the migration bookkeeping tables
        user: Authentication username
        password: Authentication password
        default_database: Database used when no explicit one is configured
        pool_size: Connection pool size
        connect_timeout: Connection timeout in seconds
        query_timeout: Query timeout in seconds
        skip_ssl_verify: Disable certificate checks for wss:// endpoints
    """

    url: str = field(default_factory=lambda: os.getenv("SURREAL_URL", "ws://localhost:8000/rpc"))
    namespace: str = field(default_factory=lambda: os.getenv("SURREAL_NAMESPACE", "revchain"))
    user: str = field(default_factory=lambda: os.getenv("SURREAL_USER", "root"))
    password: str = field(default_factory=lambda: os.getenv("SURREAL_PASS", "root"))
    default_database: str = field(default_factory=lambda: os.getenv("SURREAL_DATABASE", "default"))
    pool_size: int = field(default_factory=lambda: int(os.getenv("SURREAL_POOL_SIZE", "2")))
    connect_timeout: float = field(
        default_factory=lambda: float(os.getenv("SURREAL_CONNECT_TIMEOUT", "10.0"))
    )
    query_timeout: float = field(
        default_factory=lambda: float(os.getenv("SURREAL_QUERY_TIMEOUT", "30.0"))
    )
    skip_ssl_verify: bool = field(
        default_factory=lambda: _env_bool("SURREAL_SKIP_SSL_VERIFY", "false")
    )

    @property
    def is_secure(self) -> bool:
        """Check if using secure WebSocket connection."""
        return self.url.startswith("wss://")

    @property
    def is_local(self) -> bool:
        return "localhost" in self.url or "127.0.0.1" in self.url

    def get_database_name(self, database: Optional[str] = None) -> str:
        """Sanitize a database name for SurrealDB.

        Hyphens and spaces become underscores, other non-identifier
        characters are dropped and the result is lowercased. Names starting
        with a digit get a ``db_`` prefix.

        Examples:
            >>> SurrealConfig(default_database="default").get_database_name("My-App")
            'my_app'
            >>> SurrealConfig(default_database="default").get_database_name(None)
            'default'
        """
        if not database:
            return self.default_database

        name = database.replace("-", "_").replace(" ", "_")
        name = re.sub(r"[^a-zA-Z0-9_]", "", name).lower()
        if name and name[0].isdigit():
            name = f"db_{name}"
        return name or self.default_database

    def validate(self) -> list[str]:
        """Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.url:
            errors.append("SURREAL_URL is required")
        elif not self.url.startswith(("ws://", "wss://")):
            errors.append("SURREAL_URL must start with ws:// or wss://")

        if not self.namespace:
            errors.append("SURREAL_NAMESPACE is required")
        if not self.user:
            errors.append("SURREAL_USER is required")
        if self.pool_size < 1:
            errors.append("SURREAL_POOL_SIZE must be at least 1")

        if not self.is_local and not self.is_secure:
            errors.append("Remote SurrealDB endpoints should use wss://")

        return errors


_config: Optional[SurrealConfig] = None


def get_config() -> SurrealConfig:
    """Get the shared SurrealDB configuration, creating it from the environment."""
    global _config
    if _config is None:
        _config = SurrealConfig()
    return _config


def set_config(config: SurrealConfig) -> None:
    """Replace the shared SurrealDB configuration."""
    global _config
    _config = config


def is_surrealdb_enabled() -> bool:
    """Check whether the SurrealDB state store may be used.

    Set SURREAL_DISABLED=true to explicitly disable it.
    """
    return not _env_bool("SURREAL_DISABLED", "false")


class DatabaseRequiredError(Exception):
    """Raised when SurrealDB is required but disabled."""

    pass


def require_db() -> None:
    """Ensure SurrealDB is usable.

    Raises:
        DatabaseRequiredError: If SurrealDB is explicitly disabled
    """
    if not is_surrealdb_enabled():
        raise DatabaseRequiredError(
            "SurrealDB is required but explicitly disabled (SURREAL_DISABLED=true).\n"
            "Remove SURREAL_DISABLED or set it to 'false' to track migrations."
        )
