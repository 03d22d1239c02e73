"""Tests for MigrationConfig."""

from pathlib import Path

from revchain.config import MigrationConfig


class TestMigrationConfig:
    """Tests for MigrationConfig defaults and validation."""

    def test_env_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REVCHAIN_SCHEMA", "inventory")
        monkeypatch.setenv("REVCHAIN_SOURCE_DIR", str(tmp_path))
        monkeypatch.setenv("REVCHAIN_DATABASE", "inventory_db")
        monkeypatch.setenv("REVCHAIN_FAIL_ON_CONFLICT", "false")
        monkeypatch.delenv("REVCHAIN_ARTIFACT_DIR", raising=False)

        config = MigrationConfig()

        assert config.schema_name == "inventory"
        assert config.source_dir == tmp_path
        assert config.database == "inventory_db"
        assert config.fail_on_conflict is False

    def test_directory_fallbacks(self):
        config = MigrationConfig(
            schema_name="app", migration_source_path=None, migration_artifact_path=None
        )

        assert config.source_dir == Path("migrations/")
        assert config.artifact_dir == config.source_dir

    def test_artifact_dir_overrides_source(self, tmp_path):
        config = MigrationConfig(
            schema_name="app",
            migration_source_path=tmp_path / "src",
            migration_artifact_path=tmp_path / "build",
        )

        assert config.artifact_dir == tmp_path / "build"

    def test_validate_ok(self, migration_config):
        assert migration_config.validate() == []

    def test_validate_requires_schema(self, migration_config):
        migration_config.schema_name = ""

        errors = migration_config.validate()

        assert len(errors) == 1
        assert "schema_name is required" in errors[0]

    def test_validate_schema_characters(self, migration_config):
        migration_config.schema_name = "bad name!"

        assert "must be alphanumeric" in migration_config.validate()[0]

    def test_validate_missing_artifact_dir(self, migration_config, tmp_path):
        migration_config.migration_artifact_path = tmp_path / "absent"

        assert "not found" in migration_config.validate()[0]
