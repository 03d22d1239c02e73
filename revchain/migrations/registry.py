"""Migration registry for discovering and looking up migration units.

Provides:
- Registration of units keyed by revision id
- Per-schema filtering, base lookup and successor lookup
- Construction from an injected candidate enumeration
- File-system discovery of ``*_migration.py`` modules
"""

import importlib.util
import inspect
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from types import ModuleType
from typing import Any, Optional

from .base import AmbiguousBaseError, BaseMigration, DiscoveryError, MigrationError

logger = logging.getLogger(__name__)

MIGRATION_FILE_SUFFIX = "_migration"


def schema_names_of(unit: Any) -> frozenset[str]:
    """Normalize a unit's schema tag to a set of names."""
    names = getattr(unit, "schema_names", ())
    if isinstance(names, str):
        return frozenset({names})
    return frozenset(names)


def is_migration_unit(obj: Any) -> bool:
    """Check that an object satisfies the migration unit contract."""
    revision = getattr(obj, "revision", None)
    if not isinstance(revision, str) or not revision:
        return False
    if not hasattr(obj, "previous_revision"):
        return False
    previous = obj.previous_revision
    if previous is not None and (not isinstance(previous, str) or previous == revision):
        return False
    names = getattr(obj, "schema_names", None)
    if names is None or not isinstance(names, (str, Iterable)):
        return False
    return callable(getattr(obj, "up", None)) and callable(getattr(obj, "down", None))


class MigrationRegistry:
    """Registry of migration units keyed by revision id.

    Registration order is preserved and is the tie-break order used when a
    revision has several successors.
    """

    def __init__(self, units: Optional[Iterable[Any]] = None):
        self._units: dict[str, Any] = {}
        self._schemas: dict[str, frozenset[str]] = {}
        for unit in units or ():
            self.register(unit)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, revision: object) -> bool:
        return revision in self._units

    def register(self, unit: Any) -> None:
        """Register a unit.

        Raises:
            DiscoveryError: If the object is not a migration unit
            MigrationError: If the revision is already registered
        """
        if not is_migration_unit(unit):
            raise DiscoveryError(f"{unit!r} does not implement the migration unit contract")

        if unit.revision in self._units:
            existing = self._units[unit.revision]
            raise MigrationError(
                f"Duplicate migration revision {unit.revision}: {existing!r} and {unit!r}"
            )
        self._units[unit.revision] = unit
        self._schemas[unit.revision] = schema_names_of(unit)

    def get(self, revision: str) -> Optional[Any]:
        """Get a unit by revision id, or None."""
        return self._units.get(revision)

    def require(self, revision: str) -> Any:
        """Get a unit by revision id.

        Raises:
            DiscoveryError: If no unit has that revision
        """
        unit = self._units.get(revision)
        if unit is None:
            raise DiscoveryError(f"No migration unit found for revision {revision}")
        return unit

    def schema_names(self, revision: str) -> frozenset[str]:
        """Schema tag of a registered unit, as captured at registration."""
        return self._schemas.get(revision, frozenset())

    def list_units(self, schema_name: str) -> list[Any]:
        """Units tagged with ``schema_name``, in registration order."""
        return [u for rev, u in self._units.items() if schema_name in self._schemas[rev]]

    def base_unit(self, schema_name: str) -> Optional[Any]:
        """The unit of a schema without a previous revision.

        Raises:
            AmbiguousBaseError: If several units claim to be the base
        """
        bases = [u for u in self.list_units(schema_name) if u.previous_revision is None]
        if len(bases) > 1:
            raise AmbiguousBaseError(schema_name, [u.revision for u in bases])
        return bases[0] if bases else None

    def successors_of(self, revision: str, schema_name: str) -> list[Any]:
        """All units of a schema whose previous revision is ``revision``."""
        return [u for u in self.list_units(schema_name) if u.previous_revision == revision]

    def successor_of(self, revision: str, schema_name: str) -> Optional[Any]:
        """First registered successor of ``revision``, or None."""
        successors = self.successors_of(revision, schema_name)
        return successors[0] if successors else None

    @classmethod
    def from_candidates(
        cls,
        enumerate_candidates: Callable[[], Iterable[Any]],
        load: Callable[[Any], Any],
    ) -> "MigrationRegistry":
        """Build a registry from an injected candidate source.

        Candidates that fail to load or do not satisfy the unit contract are
        logged and skipped.

        Args:
            enumerate_candidates: Returns opaque candidate identifiers
            load: Resolves one identifier to a unit object

        Raises:
            DiscoveryError: If the enumeration itself fails
        """
        try:
            candidates = list(enumerate_candidates())
        except Exception as e:
            raise DiscoveryError(f"Failed to enumerate migration candidates: {e}") from e

        registry = cls()
        for candidate in candidates:
            try:
                unit = load(candidate)
                registry.register(unit)
            except DiscoveryError as e:
                logger.warning(f"Skipping migration candidate {candidate}: {e}")
            except MigrationError:
                raise
            except Exception as e:
                logger.warning(f"Skipping migration candidate {candidate}: failed to load: {e}")
            else:
                logger.debug(f"Discovered migration: {unit!r}")
        return registry


def _import_file(path: Path) -> ModuleType:
    module_name = f"revchain_migrations.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise DiscoveryError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_migration_file(path: Path) -> Any:
    """Load the migration unit defined by a module file.

    A module either defines one ``BaseMigration`` subclass or is itself a
    unit (module-level ``revision``, ``previous_revision``,
    ``schema_names``, ``up`` and ``down``).

    Raises:
        DiscoveryError: If the module defines no migration unit
    """
    module = _import_file(path)

    for attr_name in dir(module):
        attr = getattr(module, attr_name)
        if (
            inspect.isclass(attr)
            and issubclass(attr, BaseMigration)
            and attr is not BaseMigration
            and attr.__module__ == module.__name__
        ):
            return attr()

    if is_migration_unit(module):
        return module

    raise DiscoveryError(f"{path.name} does not define a migration unit")


def discover_migrations(path: Path) -> MigrationRegistry:
    """Discover migration modules in a directory.

    Files named ``*_migration.py`` are loaded in file-name order.

    Args:
        path: Directory holding migration modules

    Returns:
        Registry with every conforming unit
    """
    directory = Path(path)
    if not directory.is_dir():
        logger.warning(f"Migration directory {directory} does not exist")
        return MigrationRegistry()

    def enumerate_candidates() -> list[Path]:
        return sorted(directory.glob(f"*{MIGRATION_FILE_SUFFIX}.py"))

    return MigrationRegistry.from_candidates(enumerate_candidates, load_migration_file)
