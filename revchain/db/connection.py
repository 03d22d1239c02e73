"""SurrealDB connection management.

Async connection pool used by the SurrealDB state store. Pools are keyed by
database name and event loop so a pool never outlives the loop it was
created on.
"""

import asyncio
import logging
import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

import requests
import websockets
from surrealdb import AsyncSurreal
from surrealdb.connections.async_ws import AsyncWsSurrealConnection

from .config import SurrealConfig, get_config

logger = logging.getLogger(__name__)


class ConnectionError(Exception):
    """Database connection error."""

    pass


class QueryError(Exception):
    """Database query error."""

    pass


class UnverifiedWsConnection(AsyncWsSurrealConnection):
    """WebSocket connection that skips certificate verification for wss://."""

    async def connect(self, url: Optional[str] = None) -> None:
        if self.socket:  # type: ignore[has-type]
            return

        if url is not None:
            from surrealdb.connections.url import Url

            self.url = Url(url)
            self.raw_url = f"{self.url.raw_url}/rpc"
            self.host = self.url.hostname
            self.port = self.url.port

        ssl_context = None
        if self.raw_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        self.socket = await websockets.connect(
            self.raw_url,
            max_size=None,
            subprotocols=[websockets.Subprotocol("cbor")],
            ssl=ssl_context,
        )
        self.loop = asyncio.get_running_loop()
        self.recv_task = asyncio.create_task(self._recv_task())


def _flatten_result(result: Any) -> list[dict[str, Any]]:
    """Flatten the per-statement results SurrealDB returns for a query."""
    if not isinstance(result, list):
        return [result] if isinstance(result, dict) else []

    records: list[dict[str, Any]] = []
    for stmt_result in result:
        if isinstance(stmt_result, dict):
            if "result" in stmt_result:
                if stmt_result.get("status", "OK") != "OK":
                    raise QueryError(f"Statement failed: {stmt_result['result']}")
                inner = stmt_result["result"]
                if isinstance(inner, list):
                    records.extend(inner)
                elif isinstance(inner, dict):
                    records.append(inner)
            else:
                records.append(stmt_result)
        elif isinstance(stmt_result, list):
            records.extend(r for r in stmt_result if isinstance(r, dict))
    return records


class Connection:
    """A single authenticated SurrealDB connection bound to one database."""

    def __init__(self, config: SurrealConfig, database: str):
        self.config = config
        self.database = database
        self._client: Optional[Union[AsyncSurreal, UnverifiedWsConnection]] = None
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected and self._client is not None

    def _signin_token(self) -> str:
        """Fetch an auth token over HTTP, used for wss:// endpoints behind a proxy."""
        http_url = self.config.url.replace("wss://", "https://", 1).replace("ws://", "http://", 1)
        if http_url.endswith("/rpc"):
            http_url = http_url[: -len("/rpc")]

        try:
            resp = requests.post(
                f"{http_url}/signin",
                json={"user": self.config.user, "pass": self.config.password},
                headers={"Accept": "application/json"},
                timeout=self.config.connect_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise ConnectionError(f"HTTP signin request failed: {e}") from e

        token: Optional[str] = data.get("token")
        if not token:
            raise ConnectionError(f"No token in signin response: {data}")
        return token

    async def connect(self) -> None:
        """Connect, authenticate and select namespace/database."""
        async with self._lock:
            if self._connected:
                return

            try:
                if self.config.skip_ssl_verify and self.config.is_secure:
                    logger.warning("SSL verification disabled for SurrealDB connection")
                    self._client = UnverifiedWsConnection(self.config.url)
                else:
                    self._client = AsyncSurreal(self.config.url)

                await asyncio.wait_for(
                    self._client.connect(),
                    timeout=self.config.connect_timeout,
                )

                if self.config.is_secure:
                    await self._client.authenticate(self._signin_token())
                else:
                    await self._client.signin(
                        {"username": self.config.user, "password": self.config.password}
                    )

                await self._client.use(self.config.namespace, self.database)
                self._connected = True
                logger.debug(f"Connected to SurrealDB: {self.config.namespace}/{self.database}")

            except asyncio.TimeoutError as e:
                raise ConnectionError(
                    f"Connection timeout after {self.config.connect_timeout}s"
                ) from e
            except ConnectionError:
                raise
            except Exception as e:
                raise ConnectionError(f"Failed to connect: {e}") from e

    async def disconnect(self) -> None:
        """Close connection."""
        async with self._lock:
            if self._client:
                try:
                    await self._client.close()
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")
                finally:
                    self._client = None
                    self._connected = False

    async def query(
        self,
        sql: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Execute a SurrealQL query.

        Args:
            sql: SurrealQL query string
            params: Query parameters

        Returns:
            Records produced by all statements, in order

        Raises:
            QueryError: On timeout, driver failure or a failed statement
        """
        if not self.is_connected:
            await self.connect()
        assert self._client is not None

        try:
            result = await asyncio.wait_for(
                self._client.query(sql, params or {}),
                timeout=self.config.query_timeout,
            )
        except asyncio.TimeoutError as e:
            raise QueryError(f"Query timeout after {self.config.query_timeout}s") from e
        except Exception as e:
            raise QueryError(f"Query failed: {e}") from e

        return _flatten_result(result)


class ConnectionPool:
    """Fixed-size pool of connections to one database."""

    def __init__(self, config: Optional[SurrealConfig] = None, database: Optional[str] = None):
        self.config = config or get_config()
        self.database = self.config.get_database_name(database)

        self._connections: list[Connection] = []
        self._available: asyncio.Queue[Connection] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Open the pool's connections.

        Raises:
            ConnectionError: If no connection could be opened
        """
        async with self._lock:
            if self._initialized:
                return

            last_error: Optional[Exception] = None
            for i in range(self.config.pool_size):
                conn = Connection(self.config, self.database)
                try:
                    await conn.connect()
                except ConnectionError as e:
                    last_error = e
                    logger.warning(f"Failed to create connection {i + 1}: {e}")
                    continue
                self._connections.append(conn)
                await self._available.put(conn)

            if not self._connections:
                raise ConnectionError(f"Failed to create any connections: {last_error}")

            self._initialized = True
            logger.info(
                f"Connection pool initialized: {len(self._connections)} connections "
                f"to db={self.database}"
            )

    async def close(self) -> None:
        """Close all connections in the pool."""
        async with self._lock:
            for conn in self._connections:
                await conn.disconnect()
            self._connections.clear()
            self._available = asyncio.Queue()
            self._initialized = False

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Connection, None]:
        """Borrow a connection for the duration of the block."""
        if not self._initialized:
            await self.initialize()

        conn = await self._available.get()
        try:
            if not conn.is_connected:
                await conn.connect()
            yield conn
        finally:
            await self._available.put(conn)


_pools: dict[tuple[str, int], ConnectionPool] = {}
_pools_lock = asyncio.Lock()


async def get_pool(
    database: Optional[str] = None,
    config: Optional[SurrealConfig] = None,
) -> ConnectionPool:
    """Get or create the pool for a database on the running event loop."""
    cfg = config or get_config()
    db_name = cfg.get_database_name(database)
    pool_key = (db_name, id(asyncio.get_running_loop()))

    async with _pools_lock:
        if pool_key not in _pools:
            pool = ConnectionPool(cfg, db_name)
            await pool.initialize()
            _pools[pool_key] = pool
        return _pools[pool_key]


async def close_all_pools() -> None:
    """Close all connection pools."""
    async with _pools_lock:
        for pool in _pools.values():
            await pool.close()
        _pools.clear()


@asynccontextmanager
async def get_connection(
    database: Optional[str] = None,
    config: Optional[SurrealConfig] = None,
) -> AsyncGenerator[Connection, None]:
    """Context manager yielding a pooled connection.

    Usage:
        async with get_connection("inventory") as conn:
            await conn.query("SELECT * FROM revchain_heads")
    """
    pool = await get_pool(database, config)
    async with pool.acquire() as conn:
        yield conn
