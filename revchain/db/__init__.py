"""SurrealDB access for the revchain state store.

Environment Variables:
    SURREAL_URL: WebSocket URL (ws:// or wss://)
    SURREAL_NAMESPACE: Namespace for the bookkeeping tables
    SURREAL_USER: Authentication username
    SURREAL_PASS: Authentication password
    SURREAL_DATABASE: Default database name
    SURREAL_POOL_SIZE: Connection pool size
    SURREAL_DISABLED: Set to true to refuse database access
"""

from .config import (
    DatabaseRequiredError,
    SurrealConfig,
    get_config,
    is_surrealdb_enabled,
    require_db,
    set_config,
)
from .connection import (
    Connection,
    ConnectionError,
    ConnectionPool,
    QueryError,
    close_all_pools,
    get_connection,
    get_pool,
)

__all__ = [
    "SurrealConfig",
    "get_config",
    "set_config",
    "is_surrealdb_enabled",
    "require_db",
    "DatabaseRequiredError",
    "Connection",
    "ConnectionPool",
    "ConnectionError",
    "QueryError",
    "get_connection",
    "get_pool",
    "close_all_pools",
]
