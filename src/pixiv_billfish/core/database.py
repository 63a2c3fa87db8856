"""
SQLite operations on a Billfish library database.

Billfish owns the schema; this module only reads files/tags/notes and writes
tags, file-tag links and notes in batches. One connection is shared by all
worker threads, so every statement runs under a store-wide lock.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from loguru import logger

from .models import (
    ARTIST_PARENT_NAME,
    ARTIST_PREFIX,
    Association,
    FileRecord,
    NoteRecord,
    SchemaVariant,
    TagRecord,
    split_origin,
)


class StoreError(Exception):
    """Base exception for library database operations."""

    pass


class StoreUnavailableError(StoreError):
    """Raised when the database cannot be opened or read."""

    pass


class PersistenceError(StoreError):
    """Raised when a batch write fails; the batch was rolled back."""

    def __init__(self, operation: str, size: int, cause: Exception):
        self.operation = operation
        self.size = size
        self.cause = cause
        super().__init__(f"{operation} failed for {size} rows: {cause}")


# Performance pragmas; Billfish is closed while we sync
PRAGMAS = (
    "PRAGMA synchronous = OFF",
    "PRAGMA journal_mode = MEMORY",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA cache_size = 10000",
)


class AssetStore:
    """Billfish library database.

    Usable as a context manager:

        with AssetStore(path) as store:
            variant = store.detect_schema_variant()
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "AssetStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        """Open the connection and apply pragmas.

        Raises:
            StoreUnavailableError: If the file is missing or not a database
        """
        if self._conn is not None:
            return
        if not self.db_path.exists():
            raise StoreUnavailableError(f"Database not found: {self.db_path}")
        try:
            # Autocommit mode; batch writes manage their own transactions
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            for pragma in PRAGMAS:
                conn.execute(pragma)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {e}") from e
        self._conn = conn
        logger.debug(f"Opened Billfish database: {self.db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Hold the store lock for the duration of a block of statements."""
        with self._lock:
            if self._conn is None:
                raise StoreUnavailableError("Database is not open")
            yield self._conn

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self.connection() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Query failed: {e}") from e

    # Reads

    def detect_schema_variant(self) -> SchemaVariant:
        """Billfish 3.x libraries carry the bf_tag_v2 table."""
        rows = self._query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND tbl_name = 'bf_tag_v2'"
        )
        return SchemaVariant.HIERARCHICAL if rows else SchemaVariant.LEGACY

    def count_files(self) -> int:
        rows = self._query("SELECT COUNT(*) FROM bf_file")
        return int(rows[0][0])

    def list_files(self, offset: int, limit: int) -> List[FileRecord]:
        rows = self._query(
            "SELECT id, name FROM bf_file ORDER BY id LIMIT ? OFFSET ?", (limit, offset)
        )
        return [FileRecord(id=row["id"], name=row["name"] or "") for row in rows]

    def list_tags(self, variant: SchemaVariant) -> List[TagRecord]:
        rows = self._query(f"SELECT id, name FROM {variant.tag_table}")
        return [TagRecord(id=row["id"], name=row["name"] or "") for row in rows]

    def list_associations(self) -> List[Association]:
        rows = self._query("SELECT file_id, tag_id FROM bf_tag_join_file")
        return [Association(file_id=row["file_id"], tag_id=row["tag_id"]) for row in rows]

    def list_notes(self) -> List[NoteRecord]:
        """List non-empty notes."""
        rows = self._query(
            "SELECT file_id, note, origin FROM bf_material_userdata "
            "WHERE note IS NOT NULL AND note != ''"
        )
        notes = []
        for row in rows:
            text, origin = split_origin(row["note"])
            notes.append(
                NoteRecord(file_id=row["file_id"], text=text, origin=row["origin"] or origin)
            )
        return notes

    # Batch writes

    def _write_batch(self, operation: str, size: int, statements) -> int:
        """Run ``statements(conn)`` in one transaction under the store lock."""
        with self.connection() as conn:
            try:
                conn.execute("BEGIN")
                changed = statements(conn)
                conn.execute("COMMIT")
                return changed
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise PersistenceError(operation, size, e) from e

    def insert_tags(self, tags: Sequence[TagRecord], variant: SchemaVariant) -> int:
        """Insert new tags with engine-allocated ids.

        A row that collides with an existing tag is logged and skipped.

        Returns:
            Number of rows inserted

        Raises:
            PersistenceError: If the batch could not be written
        """
        if not tags:
            return 0
        sql = f"INSERT INTO {variant.tag_table} (id, name) VALUES (?, ?)"

        def statements(conn: sqlite3.Connection) -> int:
            inserted = 0
            for tag in tags:
                try:
                    conn.execute(sql, (tag.id, tag.name))
                    inserted += 1
                except sqlite3.IntegrityError as e:
                    logger.warning(f"Skipping tag {tag.name!r} (id={tag.id}): {e}")
            return inserted

        return self._write_batch("insert_tags", len(tags), statements)

    def insert_associations(self, associations: Sequence[Association]) -> int:
        """Insert file-tag links; duplicates are ignored.

        Raises:
            PersistenceError: If the batch could not be written
        """
        if not associations:
            return 0

        def statements(conn: sqlite3.Connection) -> int:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO bf_tag_join_file (file_id, tag_id) VALUES (?, ?)",
                [(a.file_id, a.tag_id) for a in associations],
            )
            return conn.total_changes - before

        return self._write_batch("insert_associations", len(associations), statements)

    def insert_notes(self, notes: Sequence[NoteRecord]) -> int:
        """Write notes, updating the file's userdata row when one exists.

        Raises:
            PersistenceError: If the batch could not be written
        """
        if not notes:
            return 0

        def statements(conn: sqlite3.Connection) -> int:
            for note in notes:
                params = (note.stored_text, note.origin, note.file_id)
                cursor = conn.execute(
                    "UPDATE bf_material_userdata SET note = ?, origin = ? WHERE file_id = ?",
                    params,
                )
                if cursor.rowcount == 0:
                    conn.execute(
                        "INSERT INTO bf_material_userdata (note, origin, file_id) "
                        "VALUES (?, ?, ?)",
                        params,
                    )
            return len(notes)

        return self._write_batch("insert_notes", len(notes), statements)

    # Artist grouping (Billfish 3.x only)

    def get_or_create_artist_parent_tag(self) -> int:
        """Return the id of the top-level "Artist" tag, creating it if absent.

        Raises:
            PersistenceError: If the tag could not be created
        """
        with self.connection() as conn:
            try:
                row = conn.execute(
                    "SELECT id FROM bf_tag_v2 WHERE name = ?", (ARTIST_PARENT_NAME,)
                ).fetchone()
                if row is not None:
                    return int(row["id"])
                cursor = conn.execute(
                    "INSERT INTO bf_tag_v2 (name) VALUES (?)", (ARTIST_PARENT_NAME,)
                )
                logger.info(f"Created parent tag {ARTIST_PARENT_NAME!r} (id={cursor.lastrowid})")
                return int(cursor.lastrowid)
            except sqlite3.Error as e:
                raise PersistenceError("create_artist_parent_tag", 1, e) from e

    def list_ungrouped_artist_subtags(self) -> List[TagRecord]:
        rows = self._query(
            "SELECT id, name FROM bf_tag_v2 "
            "WHERE name LIKE ? AND (pid IS NULL OR pid = 0)",
            (ARTIST_PREFIX + "%",),
        )
        # LIKE is case-insensitive in SQLite; the prefix is not
        return [
            TagRecord(id=row["id"], name=row["name"])
            for row in rows
            if row["name"].startswith(ARTIST_PREFIX)
        ]

    def regroup_artist_subtags(self, tags: Sequence[TagRecord], parent_id: int) -> int:
        """Strip the artist prefix and move tags under ``parent_id``.

        Returns:
            Number of rows updated

        Raises:
            PersistenceError: If the batch could not be written
        """
        if not tags:
            return 0

        def statements(conn: sqlite3.Connection) -> int:
            updated = 0
            for tag in tags:
                new_name = tag.name
                if new_name.startswith(ARTIST_PREFIX):
                    new_name = new_name[len(ARTIST_PREFIX):]
                try:
                    cursor = conn.execute(
                        "UPDATE bf_tag_v2 SET name = ?, pid = ? WHERE id = ?",
                        (new_name, parent_id, tag.id),
                    )
                except sqlite3.IntegrityError as e:
                    logger.error(f"Failed to regroup artist tag {tag.name!r}: {e}")
                    continue
                updated += cursor.rowcount
            return updated

        return self._write_batch("regroup_artist_subtags", len(tags), statements)
