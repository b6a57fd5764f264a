"""SQLite database holding per-account document snapshots."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from pydantic import ValidationError

from inbox_rules.errors import RuleSetLoadError, RuleSetSaveError
from inbox_rules.storage.base import DocumentStore, DocumentT


class SnapshotDatabase:
    """SQLite database of versioned JSON snapshots, one per account and kind."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create database tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                -- Latest snapshot of each account's documents
                CREATE TABLE IF NOT EXISTS snapshots (
                    account TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    document TEXT NOT NULL,
                    saved_at TEXT NOT NULL,
                    PRIMARY KEY (account, kind)
                );
            """)

    def get_snapshot(self, account: str, kind: str) -> dict[str, Any] | None:
        """
        Fetch the latest snapshot for an account.

        Returns:
            Dict with version, document and saved_at, or None.

        Raises:
            RuleSetLoadError: If the stored JSON is corrupt.
        """
        with self._connection() as conn:
            row = conn.execute(
                "SELECT version, document, saved_at FROM snapshots "
                "WHERE account = ? AND kind = ?",
                (account, kind),
            ).fetchone()

        if row is None:
            return None

        try:
            document = json.loads(row["document"])
        except (json.JSONDecodeError, TypeError) as e:
            raise RuleSetLoadError(
                f"Corrupt {kind} snapshot for account {account!r}: {e}",
                path=self.db_path,
            ) from e

        return {
            "version": row["version"],
            "document": document,
            "saved_at": datetime.fromisoformat(row["saved_at"]),
        }

    def put_snapshot(
        self, account: str, kind: str, version: int, document: dict[str, Any]
    ) -> None:
        """Insert or replace an account's snapshot."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO snapshots (account, kind, version, document, saved_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (account, kind) DO UPDATE SET
                    version = excluded.version,
                    document = excluded.document,
                    saved_at = excluded.saved_at
                """,
                (account, kind, version, json.dumps(document), datetime.now().isoformat()),
            )

    def delete_snapshot(self, account: str, kind: str) -> bool:
        """Remove a snapshot. Returns True if one existed."""
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM snapshots WHERE account = ? AND kind = ?",
                (account, kind),
            )
            return cursor.rowcount > 0

    def list_accounts(self, kind: str | None = None) -> list[str]:
        """List accounts that have at least one snapshot."""
        with self._connection() as conn:
            if kind is None:
                rows = conn.execute(
                    "SELECT DISTINCT account FROM snapshots ORDER BY account"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT DISTINCT account FROM snapshots WHERE kind = ? ORDER BY account",
                    (kind,),
                ).fetchall()
        return [row["account"] for row in rows]

    def for_account(
        self, account: str, document_type: type[DocumentT], kind: str = "rules"
    ) -> "SnapshotStore[DocumentT]":
        """Get a document store bound to one account's snapshot."""
        return SnapshotStore(self, account, document_type, kind)


class SnapshotStore(DocumentStore[DocumentT]):
    """Document store backed by a row of the snapshot database."""

    def __init__(
        self,
        database: SnapshotDatabase,
        account: str,
        document_type: type[DocumentT],
        kind: str,
    ) -> None:
        self.database = database
        self.account = account
        self.document_type = document_type
        self.kind = kind

    def load(self) -> DocumentT | None:
        try:
            snapshot = self.database.get_snapshot(self.account, self.kind)
        except sqlite3.Error as e:
            raise RuleSetLoadError(str(e), path=self.database.db_path) from e

        if snapshot is None:
            return None

        try:
            return self.document_type.model_validate(snapshot["document"])
        except ValidationError as e:
            raise RuleSetLoadError(
                f"Invalid {self.kind} snapshot for account {self.account!r}: "
                f"{e.error_count()} validation error(s)",
                path=self.database.db_path,
            ) from e

    def save(self, document: DocumentT) -> None:
        data = document.model_dump(mode="json")
        try:
            self.database.put_snapshot(
                self.account, self.kind, data.get("version", 1), data
            )
        except sqlite3.Error as e:
            raise RuleSetSaveError(str(e), path=self.database.db_path) from e
