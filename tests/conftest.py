"""Pytest fixtures for revchain tests."""

import pytest

from revchain.config import MigrationConfig
from revchain.migrations.registry import MigrationRegistry
from revchain.migrations.store import InMemoryStateStore
from tests.helpers.mock_factories import FakeUnit, create_linear_units


@pytest.fixture
def calls():
    """Shared log of unit up/down invocations."""
    return []


@pytest.fixture
def make_unit(calls):
    """Factory for fake units sharing the ``calls`` log."""

    def _make(revision, previous_revision=None, **kwargs):
        kwargs.setdefault("calls", calls)
        return FakeUnit(revision, previous_revision, **kwargs)

    return _make


@pytest.fixture
def two_unit_registry(calls):
    """R1 (base) -> R2 (head) for schema ``app``."""
    return MigrationRegistry(create_linear_units(["R1", "R2"], calls))


@pytest.fixture
def memory_store():
    """Empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def migration_config(tmp_path):
    """Configuration for schema ``app`` rooted in a temporary directory."""
    return MigrationConfig(
        schema_name="app",
        migration_source_path=tmp_path / "migrations",
        migration_artifact_path=None,
        database="test_db",
        fail_on_conflict=True,
        verbose=False,
    )
