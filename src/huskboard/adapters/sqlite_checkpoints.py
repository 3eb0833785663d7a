"""SQLite checkpoint adapter.

Implements the core CheckpointPort using a simple SQLite database. Each
reconciled domain gets its own table with the same layout.
"""

from __future__ import annotations

import re
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from huskboard.core.errors import CheckpointWriteFailure
from huskboard.core.models import CheckpointRecord, ReconcileKey, UpdatePolicy

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteCheckpointStore:
    """Thin SQLite wrapper that satisfies the CheckpointPort contract."""

    def __init__(self, db_path: str, table: str) -> None:
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._db_path = db_path
        self._table = table

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the checkpoint table if it does not exist."""

        with self._connect() as conn:
            # One row per tracked key so a restart can rebuild the cache.
            # Fields:
            # - scope_id: chat the representation lives in
            # - source_id: what the representation mirrors (PRIMARY KEY with scope_id)
            # - owner_scope_id: chat or user that configured the entry, if any
            # - content: pinned text for stickies, NULL for board entries
            # - representation_id: posted message id, NULL when nothing is posted
            # - digest: hash of the last posted content for change detection
            # - policy: edit_in_place or repost
            # - updated_at: last write timestamp for debugging
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    scope_id TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    owner_scope_id TEXT,
                    content TEXT,
                    representation_id TEXT,
                    digest TEXT,
                    policy TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (scope_id, source_id)
                )
                """
            )

    def load(self) -> List[CheckpointRecord]:
        """Return every stored record."""

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT scope_id, source_id, owner_scope_id, content, representation_id, digest, policy
                FROM {self._table}
                ORDER BY scope_id, source_id
                """
            ).fetchall()
        return [self._to_record(row) for row in rows]

    def get(self, key: ReconcileKey) -> Optional[CheckpointRecord]:
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT scope_id, source_id, owner_scope_id, content, representation_id, digest, policy
                FROM {self._table}
                WHERE scope_id = ? AND source_id = ?
                """,
                (key.scope_id, key.source_id),
            ).fetchone()
        return self._to_record(row) if row else None

    def upsert(self, record: CheckpointRecord) -> None:
        """Insert or replace the row for the record's key."""

        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {self._table} (
                        scope_id,
                        source_id,
                        owner_scope_id,
                        content,
                        representation_id,
                        digest,
                        policy,
                        updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(scope_id, source_id) DO UPDATE SET
                        owner_scope_id = excluded.owner_scope_id,
                        content = excluded.content,
                        representation_id = excluded.representation_id,
                        digest = excluded.digest,
                        policy = excluded.policy,
                        updated_at = excluded.updated_at
                    """,
                    (
                        record.scope_id,
                        record.source_id,
                        record.owner_scope_id,
                        record.content,
                        record.representation_id,
                        record.digest,
                        record.policy.value,
                        now.isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            raise CheckpointWriteFailure(f"{self._table} upsert failed for {record.key}: {exc}") from exc

    def clear(self, key: ReconcileKey) -> None:
        """Delete the row for a key; missing rows are fine."""

        try:
            with self._connect() as conn:
                conn.execute(
                    f"DELETE FROM {self._table} WHERE scope_id = ? AND source_id = ?",
                    (key.scope_id, key.source_id),
                )
        except sqlite3.Error as exc:
            raise CheckpointWriteFailure(f"{self._table} delete failed for {key}: {exc}") from exc

    @staticmethod
    def _to_record(row: sqlite3.Row) -> CheckpointRecord:
        return CheckpointRecord(
            scope_id=row["scope_id"],
            source_id=row["source_id"],
            policy=UpdatePolicy(row["policy"]),
            owner_scope_id=row["owner_scope_id"],
            content=row["content"],
            digest=row["digest"],
            representation_id=row["representation_id"],
        )
