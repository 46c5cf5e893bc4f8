"""
Unit tests for SchemaService.

Run: pytest tests/unit/test_schema_service.py -v
"""

import pytest
from unittest.mock import MagicMock

from services.lock_service import LockRegistry, SCHEMA_BOOTSTRAP_LOCK
from services.schema_service import MIGRATIONS_DIR, SchemaService
from exceptions import MigrationError


@pytest.fixture
def migrations_dir(tmp_path):
    directory = tmp_path / "migrations"
    directory.mkdir()
    (directory / "0002_staging.sql").write_text("create table if not exists staging_products ();")
    (directory / "0001_catalog.sql").write_text("create table if not exists products ();")
    (directory / "README.sql").write_text("-- not a migration")
    (directory / "0003_Bad-Name.sql").write_text("select 1;")
    (directory / "notes.txt").write_text("ignored")
    return directory


def _exec_sql_statements(mock_supabase) -> list[str]:
    return [params["sql"] for name, params in mock_supabase.rpc_calls if name == "exec_sql"]


class TestSchemaServiceDiscover:
    """Tests for SchemaService.discover()"""

    def test_only_numbered_files_in_order(self, mock_db, migrations_dir):
        migrations = SchemaService(migrations_dir=migrations_dir).discover()

        assert [(m.version, m.name) for m in migrations] == [("0001", "catalog"), ("0002", "staging")]

    def test_bundled_migrations_are_discovered(self, mock_db):
        versions = [m.version for m in SchemaService(migrations_dir=MIGRATIONS_DIR).discover()]

        assert versions == ["0001", "0002", "0003", "0004", "0005"]


class TestSchemaServiceEnsureSchema:
    """Tests for SchemaService.ensure_schema()"""

    def test_applies_pending_in_order(self, mock_db, mock_supabase, migrations_dir):
        # Arrange
        service = SchemaService(migrations_dir=migrations_dir, locks=LockRegistry())

        # Act
        applied = service.ensure_schema()

        # Assert
        assert applied == ["0001", "0002"]
        statements = _exec_sql_statements(mock_supabase)
        assert len(statements) == 3
        assert "schema_migrations" in statements[0]
        assert "products" in statements[1]
        assert "staging_products" in statements[2]
        assert [r["version"] for r in mock_supabase.rows("schema_migrations")] == ["0001", "0002"]

    def test_every_batch_takes_advisory_lock(self, mock_db, mock_supabase, migrations_dir):
        SchemaService(migrations_dir=migrations_dir, locks=LockRegistry()).ensure_schema()

        for sql in _exec_sql_statements(mock_supabase):
            assert sql.startswith(f"select pg_advisory_xact_lock({SCHEMA_BOOTSTRAP_LOCK});")

    def test_second_run_applies_nothing(self, mock_db, mock_supabase, migrations_dir):
        service = SchemaService(migrations_dir=migrations_dir, locks=LockRegistry())
        service.ensure_schema()

        applied = service.ensure_schema()

        assert applied == []
        assert len(mock_supabase.rows("schema_migrations")) == 2

    def test_skips_recorded_versions(self, mock_db, mock_supabase, migrations_dir):
        mock_supabase.set_table_data("schema_migrations", [{"version": "0001", "name": "catalog"}])

        applied = SchemaService(migrations_dir=migrations_dir, locks=LockRegistry()).ensure_schema()

        assert applied == ["0002"]

    def test_failed_migration_stops_run(self, mock_db, mock_supabase, migrations_dir, monkeypatch):
        (migrations_dir / "0003_broken.sql").write_text("create tabel broken_table;")
        original_rpc = mock_supabase.rpc

        def rpc(name, params=None):
            call = original_rpc(name, params)
            if "broken_table" in (params or {}).get("sql", ""):
                call.execute = MagicMock(side_effect=Exception("syntax error at or near tabel"))
            return call

        monkeypatch.setattr(mock_supabase, "rpc", rpc)
        service = SchemaService(migrations_dir=migrations_dir, locks=LockRegistry())

        with pytest.raises(MigrationError) as exc_info:
            service.ensure_schema()

        assert exc_info.value.details == {"version": "0003"}
        assert [r["version"] for r in mock_supabase.rows("schema_migrations")] == ["0001", "0002"]

    def test_missing_exec_sql_function(self, mock_db, mock_supabase, migrations_dir):
        mock_supabase.fail("rpc", "exec_sql")

        with pytest.raises(MigrationError):
            SchemaService(migrations_dir=migrations_dir, locks=LockRegistry()).ensure_schema()
