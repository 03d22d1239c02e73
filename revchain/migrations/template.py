"""Generation of new migration modules.

A new module follows the current head of the chain: its previous revision
is the resolved head of the schema (None for the first module).
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from textwrap import dedent
from typing import Optional

from ..config import MigrationConfig
from .base import MigrationError
from .registry import MIGRATION_FILE_SUFFIX, MigrationRegistry, discover_migrations
from .resolver import RevisionResolver

logger = logging.getLogger(__name__)


def new_revision_id() -> str:
    """Random revision id, always starting with a letter."""
    return "a" + uuid.uuid4().hex[:8]


def render_migration(
    revision: str,
    previous_revision: Optional[str],
    schema_name: str,
    message: str = "migration",
) -> str:
    """Render the source of a migration module."""
    summary = " ".join(message.split()) or "migration"
    summary = summary.replace("\\", "\\\\").replace('"""', "'''")
    template = dedent(f'''
        """{summary}

        Revision ID: {revision}
        Revises: {previous_revision or "<base>"}
        Create Date: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
        """

        from revchain.migrations import BaseMigration, MigrationContext


        class Migration{revision.capitalize()}(BaseMigration):
            revision = "{revision}"
            previous_revision = {previous_revision!r}
            schema_names = {{{schema_name!r}}}
            message = {message!r}

            async def up(self, ctx: MigrationContext) -> None:
                pass

            async def down(self, ctx: MigrationContext) -> None:
                pass
    ''').strip()
    return template + "\n"


def create_migration_file(
    config: MigrationConfig,
    message: str = "migration",
    registry: Optional[MigrationRegistry] = None,
) -> Path:
    """Write a new migration module chained onto the current head.

    Args:
        config: Configuration naming the schema and directories
        message: Summary stored in the module
        registry: Existing units (discovered from the artifact directory
            if not provided)

    Returns:
        Path of the created file

    Raises:
        MigrationError: If the file already exists or no schema is configured
        ConflictError: If the chain is conflicting and fail_on_conflict is set
    """
    if not config.schema_name:
        raise MigrationError("A schema name is required to create a migration")

    if registry is None:
        registry = discover_migrations(config.artifact_dir)
    resolver = RevisionResolver(registry, fail_on_conflict=config.fail_on_conflict)
    previous_revision = resolver.resolve_head(config.schema_name)

    revision = new_revision_id()
    source_dir = config.source_dir
    source_dir.mkdir(parents=True, exist_ok=True)
    filepath = source_dir / f"{revision}{MIGRATION_FILE_SUFFIX}.py"
    if filepath.exists():
        raise MigrationError(f"Migration file already exists: {filepath}")

    filepath.write_text(render_migration(revision, previous_revision, config.schema_name, message))
    logger.info(f"New migration file created: {filepath} ({previous_revision} -> {revision})")
    return filepath
