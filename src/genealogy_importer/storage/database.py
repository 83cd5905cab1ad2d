"""
SQLite persistence for imported workspaces.

Stores workspaces, their members, and the Person/Couple graph built by
the importer. The connection runs in autocommit mode so transactions and
savepoints are issued explicitly: the importer wraps a whole run in one
transaction and each record in its own savepoint.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from genealogy_importer.core.models import Couple, Person, Workspace

SCHEMA = """
CREATE TABLE IF NOT EXISTS workspaces (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    original_filename TEXT,
    personal INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workspace_members (
    workspace_id INTEGER NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    actor_id TEXT NOT NULL,
    actor_name TEXT,
    role TEXT NOT NULL,
    PRIMARY KEY (workspace_id, actor_id)
);

CREATE TABLE IF NOT EXISTS persons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workspace_id INTEGER NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    gedcom_id TEXT,
    firstname TEXT,
    surname TEXT,
    birthname TEXT,
    nickname TEXT,
    sex TEXT CHECK (sex IS NULL OR sex IN ('M', 'F', 'X')),
    dob TEXT,
    yob INTEGER,
    pob TEXT,
    dod TEXT,
    yod INTEGER,
    pod TEXT,
    father_id INTEGER REFERENCES persons(id),
    mother_id INTEGER REFERENCES persons(id),
    parents_id INTEGER REFERENCES couples(id)
);

CREATE TABLE IF NOT EXISTS couples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workspace_id INTEGER NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    gedcom_id TEXT,
    person1_id INTEGER REFERENCES persons(id),
    person2_id INTEGER REFERENCES persons(id),
    is_married INTEGER NOT NULL DEFAULT 0,
    has_ended INTEGER NOT NULL DEFAULT 0,
    date_start TEXT,
    date_end TEXT,
    CHECK (person1_id IS NOT NULL OR person2_id IS NOT NULL),
    CHECK (person1_id IS NULL OR person2_id IS NULL OR person1_id <> person2_id)
);

CREATE INDEX IF NOT EXISTS idx_persons_workspace ON persons(workspace_id);
CREATE INDEX IF NOT EXISTS idx_couples_workspace ON couples(workspace_id);
"""


class StorageError(Exception):
    """Persistence infrastructure failure."""
    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"Database error during {operation}: {message}")


class IntegrityViolation(StorageError):
    """A single write violated a table constraint."""
    pass


class GenealogyDatabase:
    """
    SQLite database of workspaces, persons and couples.

    Usage:
        with GenealogyDatabase("tree.db") as db:
            db.initialize()
            with db.transaction():
                workspace = db.create_workspace(Workspace(...))
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        """
        Initialize database client.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open the connection with foreign keys enforced."""
        if self._conn:
            return
        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            self._conn = None
            raise StorageError("connect", str(e)) from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> GenealogyDatabase:
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Not connected to database")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self.conn.in_transaction

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError("initialize", str(e)) from e

    def _execute(self, operation: str, sql: str, params: Any = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise IntegrityViolation(operation, str(e)) from e
        except sqlite3.Error as e:
            raise StorageError(operation, str(e)) from e

    # =========================================
    # Transactions
    # =========================================

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run the block in one transaction: commit on success, roll back on any error."""
        self._execute("begin", "BEGIN")
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        else:
            try:
                self._execute("commit", "COMMIT")
            except StorageError:
                self.conn.rollback()
                raise

    @contextmanager
    def savepoint(self, name: str = "record") -> Generator[None, None, None]:
        """Nested unit of work; an error undoes only the writes made inside it."""
        self._execute("savepoint", f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            self._execute("rollback to savepoint", f"ROLLBACK TO SAVEPOINT {name}")
            self._execute("release savepoint", f"RELEASE SAVEPOINT {name}")
            raise
        else:
            self._execute("release savepoint", f"RELEASE SAVEPOINT {name}")

    # =========================================
    # Workspace Operations
    # =========================================

    def create_workspace(self, workspace: Workspace) -> Workspace:
        """Insert a workspace and return it with its new id."""
        workspace_id = self._insert("workspaces", workspace.model_dump(mode="json", exclude={"id"}))
        return workspace.model_copy(update={"id": workspace_id})

    def add_member(self, workspace_id: int, actor_id: str, role: str,
                   actor_name: str | None = None) -> None:
        self._execute(
            "add member",
            "INSERT INTO workspace_members (workspace_id, actor_id, actor_name, role) "
            "VALUES (?, ?, ?, ?)",
            (workspace_id, actor_id, actor_name, role),
        )

    def get_workspace(self, workspace_id: int) -> Workspace | None:
        row = self._execute(
            "get workspace", "SELECT * FROM workspaces WHERE id = ?", (workspace_id,)
        ).fetchone()
        return Workspace.model_validate(dict(row)) if row else None

    def list_members(self, workspace_id: int) -> list[dict[str, Any]]:
        rows = self._execute(
            "list members",
            "SELECT actor_id, actor_name, role FROM workspace_members "
            "WHERE workspace_id = ? ORDER BY actor_id",
            (workspace_id,),
        ).fetchall()
        return [dict(row) for row in rows]

    # =========================================
    # Person Operations
    # =========================================

    def add_person(self, person: Person) -> Person:
        """Insert a person and return it with its new id."""
        person_id = self._insert("persons", person.model_dump(mode="json", exclude={"id"}))
        return person.model_copy(update={"id": person_id})

    def get_person(self, person_id: int) -> Person | None:
        row = self._execute(
            "get person", "SELECT * FROM persons WHERE id = ?", (person_id,)
        ).fetchone()
        return Person.model_validate(dict(row)) if row else None

    def list_persons(self, workspace_id: int) -> list[Person]:
        rows = self._execute(
            "list persons",
            "SELECT * FROM persons WHERE workspace_id = ? ORDER BY id",
            (workspace_id,),
        ).fetchall()
        return [Person.model_validate(dict(row)) for row in rows]

    def link_child(self, person_id: int, father_id: int | None,
                   mother_id: int | None, parents_id: int | None) -> None:
        """Set a person's parents; each call replaces all three links."""
        cursor = self._execute(
            "link child",
            "UPDATE persons SET father_id = ?, mother_id = ?, parents_id = ? WHERE id = ?",
            (father_id, mother_id, parents_id, person_id),
        )
        if cursor.rowcount == 0:
            raise IntegrityViolation("link child", f"no person with id {person_id}")

    # =========================================
    # Couple Operations
    # =========================================

    def add_couple(self, couple: Couple) -> Couple:
        """Insert a couple and return it with its new id."""
        couple_id = self._insert("couples", couple.model_dump(mode="json", exclude={"id"}))
        return couple.model_copy(update={"id": couple_id})

    def get_couple(self, couple_id: int) -> Couple | None:
        row = self._execute(
            "get couple", "SELECT * FROM couples WHERE id = ?", (couple_id,)
        ).fetchone()
        return Couple.model_validate(dict(row)) if row else None

    def find_couple(self, workspace_id: int, partner_a: int | None,
                    partner_b: int | None) -> Couple | None:
        """
        Find a couple by its partners, in either order.

        A None partner matches only a couple with that side empty. When
        several couples share the pair, the earliest is returned.
        """
        row = self._execute(
            "find couple",
            "SELECT * FROM couples WHERE workspace_id = ? AND ("
            "(person1_id IS ? AND person2_id IS ?) OR "
            "(person1_id IS ? AND person2_id IS ?)"
            ") ORDER BY id LIMIT 1",
            (workspace_id, partner_a, partner_b, partner_b, partner_a),
        ).fetchone()
        return Couple.model_validate(dict(row)) if row else None

    def list_couples(self, workspace_id: int) -> list[Couple]:
        rows = self._execute(
            "list couples",
            "SELECT * FROM couples WHERE workspace_id = ? ORDER BY id",
            (workspace_id,),
        ).fetchall()
        return [Couple.model_validate(dict(row)) for row in rows]

    # =========================================
    # Statistics
    # =========================================

    def get_statistics(self, workspace_id: int) -> dict[str, int]:
        """Counts of persisted entities in a workspace."""
        row = self._execute(
            "statistics",
            """
            SELECT
                (SELECT COUNT(*) FROM persons WHERE workspace_id = :ws) AS persons,
                (SELECT COUNT(*) FROM couples WHERE workspace_id = :ws) AS couples,
                (SELECT COUNT(*) FROM persons WHERE workspace_id = :ws
                    AND parents_id IS NOT NULL) AS linked_children,
                (SELECT COUNT(*) FROM workspace_members WHERE workspace_id = :ws) AS members
            """,
            {"ws": workspace_id},
        ).fetchone()
        return dict(row)

    def _insert(self, table: str, data: dict[str, Any]) -> int:
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        cursor = self._execute(
            f"insert into {table}",
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            list(data.values()),
        )
        return cursor.lastrowid
