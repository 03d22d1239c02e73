"""State stores for the applied head and the migration history.

Each store operation is atomic on its own. A whole upgrade or downgrade is
not; callers serialize runs per schema.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from ..db.config import SurrealConfig
from ..db.connection import ConnectionError, QueryError, get_connection
from .base import HeadRecord, HistoryEntry, Operation, StoreError

logger = logging.getLogger(__name__)

HEADS_TABLE = "revchain_heads"
HISTORY_TABLE = "revchain_history"

BOOTSTRAP_SQL = f"""
DEFINE TABLE IF NOT EXISTS {HEADS_TABLE} SCHEMAFULL;
DEFINE FIELD IF NOT EXISTS schema_name ON TABLE {HEADS_TABLE} TYPE string;
DEFINE FIELD IF NOT EXISTS current_head ON TABLE {HEADS_TABLE} TYPE option<string>;
DEFINE FIELD IF NOT EXISTS updated_at ON TABLE {HEADS_TABLE} TYPE datetime DEFAULT time::now();
DEFINE INDEX IF NOT EXISTS idx_heads_schema ON TABLE {HEADS_TABLE} COLUMNS schema_name UNIQUE;

DEFINE TABLE IF NOT EXISTS {HISTORY_TABLE} SCHEMAFULL;
DEFINE FIELD IF NOT EXISTS operation_id ON TABLE {HISTORY_TABLE} TYPE int;
DEFINE FIELD IF NOT EXISTS migration_name ON TABLE {HISTORY_TABLE} TYPE string;
DEFINE FIELD IF NOT EXISTS schema_name ON TABLE {HISTORY_TABLE} TYPE string;
DEFINE FIELD IF NOT EXISTS operation ON TABLE {HISTORY_TABLE} TYPE string ASSERT $value IN ["up", "down"];
DEFINE FIELD IF NOT EXISTS operation_timestamp ON TABLE {HISTORY_TABLE} TYPE datetime;
DEFINE INDEX IF NOT EXISTS idx_history_operation ON TABLE {HISTORY_TABLE} COLUMNS operation_id UNIQUE;
DEFINE INDEX IF NOT EXISTS idx_history_schema ON TABLE {HISTORY_TABLE} COLUMNS schema_name;
"""

# A single statement runs as one transaction, so the max+1 read and the
# insert cannot interleave with another append.
APPEND_HISTORY_SQL = f"""
CREATE {HISTORY_TABLE} CONTENT {{
    operation_id: (math::max((SELECT VALUE operation_id FROM {HISTORY_TABLE})) ?? 0) + 1,
    migration_name: $migration_name,
    schema_name: $schema_name,
    operation: $operation,
    operation_timestamp: time::now()
}};
"""

SET_HEAD_SQL = f"""
UPSERT type::thing("{HEADS_TABLE}", $schema_name) CONTENT {{
    schema_name: $schema_name,
    current_head: $current_head,
    updated_at: time::now()
}};
"""


class StateStore(ABC):
    """Persistence for per-schema heads and the global history log."""

    @abstractmethod
    async def ensure_schema(self) -> None:
        """Create the backing tables if missing. Safe to call repeatedly."""

    @abstractmethod
    async def get_head(self, schema_name: str) -> Optional[str]:
        """Applied head of a schema, or None."""

    @abstractmethod
    async def set_head(self, schema_name: str, revision: Optional[str]) -> HeadRecord:
        """Upsert the head record of a schema."""

    @abstractmethod
    async def append_history(
        self, schema_name: str, revision: str, operation: Operation
    ) -> HistoryEntry:
        """Append a history entry with the next operation id."""

    @abstractmethod
    async def get_history(
        self, schema_name: Optional[str] = None, limit: Optional[int] = None
    ) -> list[HistoryEntry]:
        """History entries ordered by operation id, optionally the last ``limit``."""


def _tail(entries: list[HistoryEntry], limit: Optional[int]) -> list[HistoryEntry]:
    if limit is None:
        return entries
    return entries[-limit:] if limit > 0 else []


class InMemoryStateStore(StateStore):
    """Process-local store, for embedding and tests."""

    def __init__(self):
        self._heads: dict[str, HeadRecord] = {}
        self._history: list[HistoryEntry] = []
        self._lock = asyncio.Lock()

    async def ensure_schema(self) -> None:
        return None

    async def get_head(self, schema_name: str) -> Optional[str]:
        async with self._lock:
            record = self._heads.get(schema_name)
            return record.current_head if record else None

    async def set_head(self, schema_name: str, revision: Optional[str]) -> HeadRecord:
        async with self._lock:
            record = self._heads.get(schema_name)
            if record is None:
                record = HeadRecord(schema_name=schema_name)
                self._heads[schema_name] = record
            record.current_head = revision
            return HeadRecord(schema_name, revision)

    async def append_history(
        self, schema_name: str, revision: str, operation: Operation
    ) -> HistoryEntry:
        async with self._lock:
            next_id = max((e.operation_id for e in self._history), default=0) + 1
            entry = HistoryEntry(
                operation_id=next_id,
                migration_name=revision,
                schema_name=schema_name,
                operation=operation,
                timestamp=datetime.now(timezone.utc),
            )
            self._history.append(entry)
            return entry

    async def get_history(
        self, schema_name: Optional[str] = None, limit: Optional[int] = None
    ) -> list[HistoryEntry]:
        async with self._lock:
            entries = [
                e for e in self._history if schema_name is None or e.schema_name == schema_name
            ]
        return _tail(entries, limit)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    # Strings and driver datetime wrappers both render as ISO 8601.
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _to_history_entry(record: dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        operation_id=int(record["operation_id"]),
        migration_name=record["migration_name"],
        schema_name=record["schema_name"],
        operation=Operation(record["operation"]),
        timestamp=_parse_timestamp(record["operation_timestamp"]),
    )


class SurrealStateStore(StateStore):
    """SurrealDB-backed store.

    Heads live in ``revchain_heads`` keyed by schema name, history rows in
    ``revchain_history`` with a unique index on ``operation_id``.

    Args:
        database: Database holding the tables (config default if None)
        config: Optional connection configuration override
    """

    def __init__(self, database: Optional[str] = None, config: Optional[SurrealConfig] = None):
        self.database = database
        self.config = config

    async def _query(
        self, action: str, sql: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        try:
            async with get_connection(self.database, self.config) as conn:
                return await conn.query(sql, params)
        except (ConnectionError, QueryError) as e:
            logger.error(f"State store failed to {action}: {e}")
            raise StoreError(f"Failed to {action}: {e}") from e

    async def ensure_schema(self) -> None:
        await self._query("create migration tables", BOOTSTRAP_SQL)
        logger.debug(f"Migration tables ready in database {self.database or 'default'}")

    async def get_head(self, schema_name: str) -> Optional[str]:
        result = await self._query(
            f"read head of {schema_name}",
            f"SELECT current_head FROM {HEADS_TABLE} WHERE schema_name = $schema_name",
            {"schema_name": schema_name},
        )
        head = result[0].get("current_head") if result else None
        logger.debug(f"Current applied head of {schema_name} is {head}")
        return head

    async def set_head(self, schema_name: str, revision: Optional[str]) -> HeadRecord:
        await self._query(
            f"set head of {schema_name} to {revision}",
            SET_HEAD_SQL,
            {"schema_name": schema_name, "current_head": revision},
        )
        return HeadRecord(schema_name, revision)

    async def append_history(
        self, schema_name: str, revision: str, operation: Operation
    ) -> HistoryEntry:
        result = await self._query(
            f"append {operation.value} of {revision} to history",
            APPEND_HISTORY_SQL,
            {
                "migration_name": revision,
                "schema_name": schema_name,
                "operation": operation.value,
            },
        )
        created = [r for r in result if "operation_id" in r]
        if not created:
            raise StoreError(f"History append for {revision} returned no record")
        return _to_history_entry(created[-1])

    async def get_history(
        self, schema_name: Optional[str] = None, limit: Optional[int] = None
    ) -> list[HistoryEntry]:
        if schema_name is None:
            sql = f"SELECT * FROM {HISTORY_TABLE} ORDER BY operation_id"
            params: dict[str, Any] = {}
        else:
            sql = (
                f"SELECT * FROM {HISTORY_TABLE} WHERE schema_name = $schema_name "
                "ORDER BY operation_id"
            )
            params = {"schema_name": schema_name}
        result = await self._query("read history", sql, params)
        return _tail([_to_history_entry(r) for r in result], limit)
