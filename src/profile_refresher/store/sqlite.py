"""SQLite-backed key-value store with deterministic migration bootstrap."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
import json
from pathlib import Path
import sqlite3
from typing import Any

from profile_refresher.errors import StoreError


@dataclass(frozen=True)
class Migration:
    version: str
    statements: tuple[str, ...]


DEFAULT_MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version="0001_initial_items_schema",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
        ),
    ),
)


class SQLiteMigrationRunner:
    """Apply ordered migrations and enforce base pragmas."""

    def __init__(self, migrations: Sequence[Migration] | None = None) -> None:
        self._migrations = tuple(migrations or DEFAULT_MIGRATIONS)
        versions = [migration.version for migration in self._migrations]
        if versions != sorted(versions):
            raise StoreError("Migrations must be in ascending version order.")
        if len(set(versions)) != len(versions):
            raise StoreError("Migration versions must be unique.")

    def bootstrap(self, conn: sqlite3.Connection) -> None:
        self._apply_pragmas(conn)
        self._ensure_migration_table(conn)
        self._apply_pending_migrations(conn)

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = FULL")
        conn.execute("PRAGMA busy_timeout = 5000")

    def _ensure_migration_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def applied_versions(self, conn: sqlite3.Connection) -> tuple[str, ...]:
        rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
        return tuple(str(row[0]) for row in rows)

    def _apply_pending_migrations(self, conn: sqlite3.Connection) -> None:
        applied = set(self.applied_versions(conn))
        for migration in self._migrations:
            if migration.version in applied:
                continue
            try:
                conn.execute("BEGIN")
                for statement in migration.statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES(?, ?)",
                    (migration.version, _utcnow_db()),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StoreError(
                    f"Failed applying migration '{migration.version}': {exc}."
                ) from exc


class SQLiteKeyValueStore:
    """SQLite implementation of the get/put key-value contract.

    Values are stored as JSON text. A row whose text no longer decodes is
    returned verbatim so callers can apply their own integrity policy.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        migration_runner: SQLiteMigrationRunner | None = None,
    ) -> None:
        self._db_path = Path(db_path).expanduser()
        self._migration_runner = migration_runner or SQLiteMigrationRunner()

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open SQLite database '{self._db_path}': {exc}.") from exc
        except OSError as exc:
            raise StoreError(f"Could not prepare database path '{self._db_path}': {exc}.") from exc

        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("PRAGMA busy_timeout = 5000")
            self._migration_runner.bootstrap(self._conn)
        except sqlite3.Error as exc:
            self._conn.close()
            raise StoreError(f"Could not initialize SQLite database '{self._db_path}': {exc}.") from exc
        except StoreError:
            self._conn.close()
            raise

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not close SQLite database '{self._db_path}': {exc}.") from exc

    def __enter__(self) -> SQLiteKeyValueStore:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def get(self, key: str) -> Any | None:
        try:
            row = self._conn.execute("SELECT value FROM items WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not load key '{key}': {exc}.") from exc
        if row is None:
            return None
        raw = str(row["value"])
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def put(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Value for key '{key}' is not JSON serializable: {exc}.") from exc
        try:
            self._conn.execute(
                """
                INSERT INTO items(key, value, updated_at)
                VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, encoded, _utcnow_db()),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not save key '{key}': {exc}.") from exc

    def remove(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM items WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not remove key '{key}': {exc}.") from exc

    def migration_versions(self) -> tuple[str, ...]:
        return self._migration_runner.applied_versions(self._conn)


def _utcnow_db() -> str:
    return datetime.now(timezone.utc).isoformat()
