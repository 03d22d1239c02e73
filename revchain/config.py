"""Configuration bundle passed to every migration entry point."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_SOURCE_DIR = "migrations/"


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class MigrationConfig:
    """Settings for one schema's migration chain.

    Attributes:
        schema_name: Logical schema the chain belongs to
        migration_source_path: Directory new migration files are written to
        migration_artifact_path: Directory migration modules are discovered
            in (defaults to the source directory)
        database: SurrealDB database holding the head and history tables
        fail_on_conflict: Refuse to resolve a chain with competing successors
        verbose: Emit debug logging from the CLI
    """

    schema_name: str = field(default_factory=lambda: os.getenv("REVCHAIN_SCHEMA", ""))
    migration_source_path: Optional[Path] = field(
        default_factory=lambda: _env_path("REVCHAIN_SOURCE_DIR")
    )
    migration_artifact_path: Optional[Path] = field(
        default_factory=lambda: _env_path("REVCHAIN_ARTIFACT_DIR")
    )
    database: Optional[str] = field(default_factory=lambda: os.getenv("REVCHAIN_DATABASE"))
    fail_on_conflict: bool = field(
        default_factory=lambda: os.getenv("REVCHAIN_FAIL_ON_CONFLICT", "true").lower() == "true"
    )
    verbose: bool = field(
        default_factory=lambda: os.getenv("REVCHAIN_VERBOSE", "false").lower() == "true"
    )

    @property
    def source_dir(self) -> Path:
        """Directory for generated migration files."""
        return Path(self.migration_source_path or DEFAULT_SOURCE_DIR)

    @property
    def artifact_dir(self) -> Path:
        """Directory scanned for migration modules."""
        if self.migration_artifact_path is not None:
            return Path(self.migration_artifact_path)
        return self.source_dir

    def validate(self) -> list[str]:
        """Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        if not self.schema_name:
            errors.append("schema_name is required (set REVCHAIN_SCHEMA or pass --schema)")
        elif not self.schema_name.replace("_", "").replace("-", "").isalnum():
            errors.append(f"schema_name {self.schema_name!r} must be alphanumeric")
        if self.migration_artifact_path is not None and not self.artifact_dir.is_dir():
            errors.append(f"Migration artifact directory not found: {self.artifact_dir}")
        return errors
