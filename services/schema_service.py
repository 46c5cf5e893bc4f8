"""
Versioned schema migrations.

Applies migrations/NNNN_<name>.sql files in version order through the
`exec_sql` database function (see migrations/bootstrap/exec_sql.sql, which
is installed once by hand) and records each applied version in
`schema_migrations`.

Runs once at process start (API lifespan, CLI). Concurrent
bootstraps are serialized twice: by the in-process SCHEMA_BOOTSTRAP_LOCK
and, across processes, by a transaction-scoped Postgres advisory lock on
the same key taken at the start of every statement batch. Every migration
uses "if not exists" DDL, so a second runner that gets the lock after the
first one finished does nothing.
"""

from pathlib import Path
import re
from typing import Optional, Union
import structlog

from config import get_admin_client, get_supabase_client
from exceptions import DatabaseError, MigrationError
from services.lock_service import SCHEMA_BOOTSTRAP_LOCK, LockRegistry, get_lock_registry

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

MIGRATION_FILE_RE = re.compile(r"^(\d{4})_([a-z0-9_]+)\.sql$")

BOOTSTRAP_SQL = """
create table if not exists schema_migrations (
    version text primary key,
    name text not null,
    applied_at timestamptz not null default now()
);
"""


class Migration:
    """One migration file."""

    def __init__(self, version: str, name: str, path: Path):
        self.version = version
        self.name = name
        self.path = path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def __repr__(self) -> str:
        return f"Migration({self.version}_{self.name})"


class SchemaService:
    """
    Schema bootstrap.

    Core methods:
    - discover: Migration files in version order
    - applied_versions: Versions recorded in schema_migrations
    - ensure_schema: Apply pending migrations under the bootstrap lock
    """

    def __init__(
        self,
        migrations_dir: Optional[Union[str, Path]] = None,
        locks: Optional[LockRegistry] = None
    ):
        self.db = get_admin_client() or get_supabase_client()
        self.migrations_dir = Path(migrations_dir or MIGRATIONS_DIR)
        self.locks = locks or get_lock_registry()

    def discover(self) -> list[Migration]:
        """Migration files sorted by version; other files are ignored."""
        migrations = []
        for path in sorted(self.migrations_dir.glob("*.sql")):
            match = MIGRATION_FILE_RE.match(path.name)
            if match:
                migrations.append(Migration(match.group(1), match.group(2), path))
        return migrations

    def applied_versions(self) -> set[str]:
        try:
            result = self.db.table("schema_migrations").select("version").execute()
        except Exception as e:
            logger.error("schema_versions_read_failed", error=str(e))
            raise DatabaseError("select", str(e), {"table": "schema_migrations"})
        return {row["version"] for row in result.data or []}

    def ensure_schema(self) -> list[str]:
        """
        Apply every pending migration.

        Returns:
            Versions applied by this call (empty when up to date)

        Raises:
            MigrationError: If a migration fails; later ones are not run
            DatabaseError: If the version table cannot be read or written
        """
        with self.locks.hold(SCHEMA_BOOTSTRAP_LOCK):
            self._exec("bootstrap", BOOTSTRAP_SQL)

            applied = self.applied_versions()
            pending = [m for m in self.discover() if m.version not in applied]

            if not pending:
                logger.info("schema_up_to_date", applied=len(applied))
                return []

            done = []
            for migration in pending:
                logger.info(
                    "applying_migration",
                    version=migration.version,
                    name=migration.name
                )
                self._exec(migration.version, migration.read())
                self._record(migration)
                done.append(migration.version)

        logger.info("schema_migrated", applied=done)
        return done

    def _exec(self, version: str, sql: str) -> None:
        statement = f"select pg_advisory_xact_lock({SCHEMA_BOOTSTRAP_LOCK});\n{sql}"
        try:
            self.db.rpc("exec_sql", {"sql": statement}).execute()
        except Exception as e:
            logger.error("migration_failed", version=version, error=str(e))
            raise MigrationError(version, str(e)) from e

    def _record(self, migration: Migration) -> None:
        try:
            self.db.table("schema_migrations").upsert(
                {"version": migration.version, "name": migration.name},
                on_conflict="version",
                ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.error("migration_record_failed", version=migration.version, error=str(e))
            raise DatabaseError("insert", str(e), {"table": "schema_migrations"})


def ensure_schema() -> list[str]:
    """Apply pending migrations with default settings."""
    return SchemaService().ensure_schema()
