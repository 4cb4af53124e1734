"""
Artifact Store
==============

A persistent key -> blob map for model weights and tokenizer files, backed
by a single SQLite table.

Keys follow ``<model_name>/<model_size>/<file_name>``. Every operation is
independent: there are no cross-key transactions, so a failed download only
leaves its own key absent. SQLite failures surface as `StorageError`; a
missing key is reported as ``None``.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Generator, Iterable

import structlog

from common.errors import StorageError

log = structlog.get_logger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"


class ContentKind(Enum):
    """The closed set of artifact content kinds, keyed by media type."""

    STRUCTURED_CONFIG = "application/json"
    PLAIN_TEXT = "text/plain"
    OPAQUE_BINARY = "application/octet-stream"

    @classmethod
    def from_media_type(cls, media_type: str) -> "ContentKind | None":
        """Return the kind for ``media_type`` (parameters ignored), or None."""
        essence = media_type.split(";", 1)[0].strip().lower()
        for kind in cls:
            if kind.value == essence:
                return kind
        return None


@dataclass(frozen=True)
class ArtifactBlob:
    data: bytes
    media_type: str = DEFAULT_MEDIA_TYPE

    @property
    def kind(self) -> ContentKind | None:
        return ContentKind.from_media_type(self.media_type)

    def __len__(self) -> int:
        return len(self.data)


class ArtifactStore:
    """SQLite-backed artifact store."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS artifacts (
        key TEXT PRIMARY KEY,
        media_type TEXT NOT NULL,
        data BLOB NOT NULL
    )
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            try:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create artifact store directory: {e}") from e
        self._memory_conn = (
            sqlite3.connect(":memory:", check_same_thread=False)
            if self.db_path == ":memory:"
            else None
        )
        with self._conn() as c:
            c.execute(self.SCHEMA)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            c = self._memory_conn or sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open artifact store {self.db_path}: {e}") from e
        try:
            yield c
            c.commit()
        except sqlite3.Error as e:
            c.rollback()
            raise StorageError(f"Artifact store operation failed: {e}") from e
        finally:
            if c is not self._memory_conn:
                c.close()

    def get(self, key: str) -> ArtifactBlob | None:
        log.debug("Reading artifact", key=key)
        with self._conn() as c:
            row = c.execute(
                "SELECT media_type, data FROM artifacts WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return ArtifactBlob(data=bytes(row[1]), media_type=row[0])

    def put(self, key: str, blob: ArtifactBlob) -> None:
        with self._conn() as c:
            c.execute(
                "INSERT OR REPLACE INTO artifacts (key, media_type, data) VALUES (?, ?, ?)",
                (key, blob.media_type, sqlite3.Binary(blob.data)),
            )
        log.debug("Wrote artifact", key=key, size=len(blob.data), media_type=blob.media_type)

    def delete(self, key: str) -> None:
        with self._conn() as c:
            c.execute("DELETE FROM artifacts WHERE key = ?", (key,))

    def exists(self, key: str) -> bool:
        with self._conn() as c:
            row = c.execute("SELECT 1 FROM artifacts WHERE key = ?", (key,)).fetchone()
        return row is not None

    def exists_all(self, keys: Iterable[str]) -> bool:
        """Return True if every key is present (vacuously True for no keys)."""
        wanted = set(keys)
        if not wanted:
            return True
        placeholders = ",".join("?" * len(wanted))
        with self._conn() as c:
            rows = c.execute(
                f"SELECT key FROM artifacts WHERE key IN ({placeholders})",
                tuple(wanted),
            ).fetchall()
        return len(rows) == len(wanted)

    def scan_prefix(self, prefix: str) -> dict[str, ArtifactBlob]:
        """
        Return every artifact whose key starts with ``prefix``, keyed by the
        remainder of the key.
        """
        with self._conn() as c:
            rows = c.execute(
                "SELECT key, media_type, data FROM artifacts "
                "WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return {
            key[len(prefix):]: ArtifactBlob(data=bytes(data), media_type=media_type)
            for key, media_type, data in rows
        }

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
