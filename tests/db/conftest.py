"""DB-specific pytest fixtures.

Provides a mocked SurrealDB client and configuration for testing the
connection layer without a running server.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from revchain.db.config import SurrealConfig
from revchain.db.connection import Connection


@pytest.fixture
def mock_surreal_client():
    """Create a mock SurrealDB client."""
    client = MagicMock()
    client.connect = AsyncMock()
    client.signin = AsyncMock()
    client.authenticate = AsyncMock()
    client.use = AsyncMock()
    client.close = AsyncMock()
    client.query = AsyncMock(return_value=[{"result": [], "status": "OK"}])
    return client


@pytest.fixture
def mock_surreal_config():
    """Create a SurrealDB configuration pointing at a local server."""
    return SurrealConfig(
        url="ws://localhost:8000/rpc",
        namespace="test",
        default_database="test_db",
        user="root",
        password="root",
        pool_size=3,
        connect_timeout=5.0,
        query_timeout=30.0,
        skip_ssl_verify=False,
    )


@pytest.fixture
def mock_connection(mock_surreal_client, mock_surreal_config):
    """Create a Connection already bound to the mock client."""
    conn = Connection(mock_surreal_config, "test_db")
    conn._client = mock_surreal_client
    conn._connected = True
    return conn
