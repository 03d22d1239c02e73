"""Revision resolution over a singly-linked migration chain.

The resolver walks from the base unit of a schema through successor links
to the head. Each public call builds a ``ChainIndex`` once so the walk does
not rescan the registry per step.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .base import ConflictError, MigrationError
from .registry import MigrationRegistry

logger = logging.getLogger(__name__)


@dataclass
class RevisionInfo:
    """Display row for one revision of a chain."""

    revision: str
    previous_revision: Optional[str]
    message: str = ""


class ChainIndex:
    """Units of one schema indexed by revision and by previous revision."""

    def __init__(self, registry: MigrationRegistry, schema_name: str):
        self.schema_name = schema_name
        self.base = registry.base_unit(schema_name)
        self.units: dict[str, Any] = {}
        self.successors: dict[str, list[Any]] = {}

        for unit in registry.list_units(schema_name):
            self.units[unit.revision] = unit
            if unit.previous_revision is not None:
                self.successors.setdefault(unit.previous_revision, []).append(unit)

    def successor_of(self, revision: str, strict: bool) -> Optional[Any]:
        candidates = self.successors.get(revision, [])
        if len(candidates) > 1:
            if strict:
                raise ConflictError(
                    self.schema_name, {revision: [u.revision for u in candidates]}
                )
            logger.warning(
                f"Revision {revision} of {self.schema_name} has {len(candidates)} successors, "
                f"following {candidates[0].revision}"
            )
        return candidates[0] if candidates else None

    def walk(self, start: Optional[Any], strict: bool) -> list[Any]:
        """Follow successor links from ``start`` to the end of the chain."""
        chain: list[Any] = []
        seen: set[str] = set()
        unit = start
        while unit is not None:
            if unit.revision in seen:
                raise MigrationError(
                    f"Revision cycle in schema {self.schema_name!r} at {unit.revision}"
                )
            seen.add(unit.revision)
            chain.append(unit)
            unit = self.successor_of(unit.revision, strict)
        return chain


class RevisionResolver:
    """Resolves chains, heads, pending revisions and conflicts for a schema.

    Args:
        registry: Source of migration units
        fail_on_conflict: Raise ConflictError instead of following the first
            registered successor when a revision has several
    """

    def __init__(self, registry: MigrationRegistry, fail_on_conflict: bool = True):
        self.registry = registry
        self.fail_on_conflict = fail_on_conflict

    def _index(self, schema_name: str) -> ChainIndex:
        return ChainIndex(self.registry, schema_name)

    def resolve_chain(self, schema_name: str) -> list[str]:
        """Revision ids from base to head, in execution order."""
        index = self._index(schema_name)
        if index.base is None:
            logger.debug(f"No base revision for schema {schema_name}")
            return []
        chain = [u.revision for u in index.walk(index.base, self.fail_on_conflict)]
        logger.debug(f"Revision chain for {schema_name}: {chain}")
        return chain

    def resolve_head(self, schema_name: str) -> Optional[str]:
        """Last revision of the chain, or None if there is no base."""
        chain = self.resolve_chain(schema_name)
        return chain[-1] if chain else None

    def resolve_pending(self, schema_name: str, applied_head: Optional[str]) -> list[str]:
        """Revisions after ``applied_head`` up to the chain head.

        With no applied head this is the whole chain. An applied head that is
        already the head, or that no unit follows, yields an empty list.
        """
        index = self._index(schema_name)
        if applied_head is None:
            start = index.base
        else:
            start = index.successor_of(applied_head, self.fail_on_conflict)

        pending = [u.revision for u in index.walk(start, self.fail_on_conflict)]
        logger.debug(f"Revisions needing migration for {schema_name}: {pending}")
        return pending

    def detect_conflicts(self, schema_name: str) -> set[str]:
        """Revisions on the chain that have more than one successor.

        Diagnostic only: the walk follows the first registered successor and
        never raises for a conflict.
        """
        index = self._index(schema_name)
        if index.base is None:
            return set()

        conflicts = set()
        for unit in index.walk(index.base, strict=False):
            if len(index.successors.get(unit.revision, [])) > 1:
                logger.warning(f"Conflict detected at revision {unit.revision} of {schema_name}")
                conflicts.add(unit.revision)
        return conflicts

    def check_conflicts(self, schema_name: str) -> None:
        """Raise if the chain of a schema has conflicts.

        Raises:
            ConflictError: Listing every conflicting revision and its successors
        """
        conflicts = self.detect_conflicts(schema_name)
        if not conflicts:
            return
        index = self._index(schema_name)
        raise ConflictError(
            schema_name,
            {rev: [u.revision for u in index.successors[rev]] for rev in sorted(conflicts)},
        )

    def get_revision_tree(self, schema_name: str) -> list[RevisionInfo]:
        """Chain of a schema with per-revision details, base first."""
        index = self._index(schema_name)
        if index.base is None:
            return []
        return [
            RevisionInfo(
                revision=u.revision,
                previous_revision=u.previous_revision,
                message=getattr(u, "message", "") or "",
            )
            for u in index.walk(index.base, self.fail_on_conflict)
        ]
