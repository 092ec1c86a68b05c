"""SQLite-backed archive database, by default ``.archgraph/archive.db``.

Every store operation opens its own short-lived connection, so operations on
different projects never share transaction state. Writers take the database
write lock up front with ``BEGIN IMMEDIATE``; together with the uniqueness
constraints below that is what keeps version numbers and the active flag
consistent across threads and processes.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from ..logging_config import get_logger

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 2


class ArchiveDB:
    """Manages the archive SQLite database.

    Usage::

        db = ArchiveDB(".archgraph/archive.db")
        db.initialize()
        with db.transaction() as conn:
            ...
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 30.0) -> None:
        self.db_path: Path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._initialized = False

    # ── lifecycle ─────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        """Create the parent directory and keep it out of version control."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        gitignore = self.db_path.parent / ".gitignore"
        if self.db_path.parent.name == ".archgraph" and not gitignore.exists():
            gitignore.write_text("*\n")

    def initialize(self) -> "ArchiveDB":
        """Create the database file and run migrations. Idempotent."""
        if self._initialized:
            return self
        self._ensure_dir()
        conn = self._open()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            self._migrate(conn)
        finally:
            conn.close()
        self._initialized = True
        logger.debug("Archive DB ready at %s", self.db_path)
        return self

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout,
            isolation_level=None,
        )
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a fresh autocommit connection for reads."""
        self.initialize()
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside ``BEGIN IMMEDIATE``.

        Commits on normal exit, rolls back and re-raises on any exception.
        """
        self.initialize()
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            conn.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self, c: sqlite3.Connection) -> None:
        """Idempotently create / upgrade all tables."""
        c.execute("BEGIN IMMEDIATE")
        try:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                )
                """
            )
            row = c.execute("SELECT version FROM schema_version").fetchone()
            if row is None:
                c.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (_SCHEMA_VERSION,),
                )

            # ── snapshots ────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id  TEXT    NOT NULL,
                    version     INTEGER NOT NULL CHECK (version >= 1),
                    active      INTEGER NOT NULL DEFAULT 0 CHECK (active IN (0, 1)),
                    created_by  TEXT    NOT NULL DEFAULT '',
                    created_at  TEXT    NOT NULL,
                    modules     TEXT    NOT NULL DEFAULT '[]',
                    UNIQUE (project_id, version)
                )
                """
            )

            # ── snapshot_nodes ───────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshot_nodes (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    snapshot_id INTEGER NOT NULL REFERENCES snapshots(id),
                    position    INTEGER NOT NULL,
                    node_id     TEXT    NOT NULL,
                    node_type   TEXT    NOT NULL,
                    label       TEXT    NOT NULL DEFAULT '',
                    meta        TEXT    NOT NULL DEFAULT '{}',
                    UNIQUE (snapshot_id, node_id)
                )
                """
            )

            # ── snapshot_edges ───────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshot_edges (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    snapshot_id INTEGER NOT NULL REFERENCES snapshots(id),
                    position    INTEGER NOT NULL,
                    src         TEXT    NOT NULL,
                    dst         TEXT    NOT NULL,
                    label       TEXT,
                    meta        TEXT    NOT NULL DEFAULT '{}',
                    UNIQUE (snapshot_id, src, dst)
                )
                """
            )

            # ── modules ──────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS modules (
                    id          TEXT    PRIMARY KEY,
                    project_id  TEXT    NOT NULL,
                    ord         INTEGER NOT NULL,
                    status      TEXT    NOT NULL,
                    confidence  TEXT    NOT NULL,
                    name        TEXT    NOT NULL DEFAULT '',
                    rationale   TEXT    NOT NULL DEFAULT '',
                    nodes       TEXT    NOT NULL DEFAULT '[]',
                    edges       TEXT    NOT NULL DEFAULT '[]',
                    merged_at   TEXT,
                    merged_content TEXT
                )
                """
            )

            # v1 archives predate merged_content (the module as folded).
            columns = {r[1] for r in c.execute("PRAGMA table_info(modules)").fetchall()}
            if "merged_content" not in columns:
                c.execute("ALTER TABLE modules ADD COLUMN merged_content TEXT")
            c.execute("UPDATE schema_version SET version = ?", (_SCHEMA_VERSION,))

            # ── review_items ─────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS review_items (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id    TEXT    NOT NULL,
                    module_id     TEXT    NOT NULL,
                    conflict_type TEXT    NOT NULL,
                    message       TEXT    NOT NULL,
                    node_id       TEXT,
                    details       TEXT    NOT NULL DEFAULT '{}',
                    status        TEXT    NOT NULL DEFAULT 'pending'
                                  CHECK (status IN ('pending', 'resolved')),
                    created_at    TEXT    NOT NULL,
                    resolved_at   TEXT,
                    resolution    TEXT,
                    resolved_by   TEXT
                )
                """
            )

            # ── audit_log ────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id  TEXT    NOT NULL,
                    action      TEXT    NOT NULL,
                    actor       TEXT    NOT NULL,
                    reason      TEXT    NOT NULL DEFAULT '',
                    metadata    TEXT    NOT NULL DEFAULT '{}',
                    timestamp   TEXT    NOT NULL
                )
                """
            )

            # ── indexes ──────────────────────────────────────────
            # At most one active snapshot per project, enforced by storage.
            c.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_snapshots_one_active "
                "ON snapshots(project_id) WHERE active = 1"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_snapshot_nodes_snapshot ON snapshot_nodes(snapshot_id)"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_snapshot_edges_snapshot ON snapshot_edges(snapshot_id)"
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_modules_project ON modules(project_id, ord)")
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_review_items_module ON review_items(module_id, status)"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_review_items_project ON review_items(project_id, status)"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_log_project ON audit_log(project_id, action)"
            )

            # ── append-only guards ───────────────────────────────
            c.execute(
                """
                CREATE TRIGGER IF NOT EXISTS snapshots_no_delete
                BEFORE DELETE ON snapshots
                BEGIN
                    SELECT RAISE(ABORT, 'snapshots are append-only');
                END
                """
            )
            c.execute(
                """
                CREATE TRIGGER IF NOT EXISTS snapshots_write_once
                BEFORE UPDATE OF project_id, version, created_by, created_at, modules ON snapshots
                BEGIN
                    SELECT RAISE(ABORT, 'snapshot content is immutable');
                END
                """
            )
            for table in ("snapshot_nodes", "snapshot_edges", "audit_log"):
                c.execute(
                    f"""
                    CREATE TRIGGER IF NOT EXISTS {table}_no_update
                    BEFORE UPDATE ON {table}
                    BEGIN
                        SELECT RAISE(ABORT, '{table} is append-only');
                    END
                    """
                )
                c.execute(
                    f"""
                    CREATE TRIGGER IF NOT EXISTS {table}_no_delete
                    BEFORE DELETE ON {table}
                    BEGIN
                        SELECT RAISE(ABORT, '{table} is append-only');
                    END
                    """
                )

            c.commit()
        except BaseException:
            c.rollback()
            raise
