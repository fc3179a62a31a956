"""
Database module for mediatrack.

Handles SQLite database initialization, schema creation, connection management,
and the repositories that read and write each table group.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import StorageError
from .models import Collection, ConfigEntry, Entry, MediaItem, ShareToken, User


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _encode_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _decode_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _encode_json(value: Any) -> Optional[str]:
    # None stays NULL so absent and empty maps stay distinct
    if value is None:
        return None
    return json.dumps(value)


def _decode_json(value: Optional[str]) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise StorageError("Corrupt JSON column value: %r" % value) from e


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses ~/.mediatrack/mediatrack.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            home = Path.home()
            data_dir = home / ".mediatrack"
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / "mediatrack.db")

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info("Database initialized at %s", self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS media_items (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    original_title TEXT,
                    year INTEGER,
                    cover_url TEXT,
                    creators TEXT,
                    genres TEXT,
                    duration INTEGER,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    media_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    rating REAL,
                    review_md TEXT,
                    progress TEXT,
                    started_at TEXT,
                    finished_at TEXT,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY (media_id) REFERENCES media_items(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS collections (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    is_public INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS collection_entries (
                    collection_id TEXT NOT NULL,
                    entry_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (collection_id, entry_id),
                    FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE,
                    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS share_tokens (
                    token TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_media_title
                ON media_items(title)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_entries_user_updated
                ON entries(user_id, updated_at DESC)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_entries_user_media
                ON entries(user_id, media_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_collection_entries_position
                ON collection_entries(collection_id, position)
            """)

            conn.commit()
        finally:
            conn.close()
        self.logger.debug("Database schema created/verified")

    def get_connection(self):
        """
        Get a new database connection.

        Each request gets its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        # Unicode-aware case folding for title search
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        return conn

    def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            conn = self.get_connection()
            try:
                conn.execute("SELECT 1").fetchone()
                return True
            finally:
                conn.close()
        except sqlite3.Error as e:
            self.logger.error("Database ping failed: %s", e)
            return False

    def close(self):
        """Close database connection (no-op since we use per-request connections)."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class BaseRepository:
    """Shared connection handling for repositories."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection, translating driver errors into StorageError."""
        conn = self.database.get_connection()
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            conn.close()


# =========================================================================
# Row conversion
# =========================================================================

MEDIA_COLUMNS = (
    "id",
    "type",
    "title",
    "original_title",
    "year",
    "cover_url",
    "creators",
    "genres",
    "duration",
    "metadata",
    "created_at",
)

ENTRY_COLUMNS = (
    "id",
    "user_id",
    "media_id",
    "status",
    "rating",
    "review_md",
    "progress",
    "started_at",
    "finished_at",
    "updated_at",
)

# Entry columns joined with media columns, the latter prefixed with m_
ENTRY_SELECT = "SELECT {}, {} FROM entries e LEFT JOIN media_items m ON e.media_id = m.id".format(
    ", ".join("e.%s" % col for col in ENTRY_COLUMNS),
    ", ".join("m.%s AS m_%s" % (col, col) for col in MEDIA_COLUMNS),
)


def _row_to_media(row: sqlite3.Row, prefix: str = "") -> MediaItem:
    return MediaItem(
        id=row[prefix + "id"],
        type=row[prefix + "type"],
        title=row[prefix + "title"],
        original_title=row[prefix + "original_title"],
        year=row[prefix + "year"],
        cover_url=row[prefix + "cover_url"],
        creators=_decode_json(row[prefix + "creators"]),
        genres=_decode_json(row[prefix + "genres"]),
        duration=row[prefix + "duration"],
        metadata=_decode_json(row[prefix + "metadata"]),
        created_at=_decode_time(row[prefix + "created_at"]),
    )


def _row_to_entry(row: sqlite3.Row) -> Entry:
    if row["m_id"] is None:
        raise StorageError(
            "Entry %s references missing media item %s" % (row["id"], row["media_id"])
        )
    return Entry(
        id=row["id"],
        user_id=row["user_id"],
        media_id=row["media_id"],
        status=row["status"],
        media=_row_to_media(row, prefix="m_"),
        rating=row["rating"],
        review_md=row["review_md"],
        progress=_decode_json(row["progress"]),
        started_at=_decode_time(row["started_at"]),
        finished_at=_decode_time(row["finished_at"]),
        updated_at=_decode_time(row["updated_at"]),
    )


def _row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        is_public=bool(row["is_public"]),
        created_at=_decode_time(row["created_at"]),
    )


# =========================================================================
# Repositories
# =========================================================================


class UserRepository(BaseRepository):
    """Reads and writes the users table."""

    def create(self, user_id: str, email: str, name: str) -> User:
        created_at = utcnow()
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)",
                (user_id, email, name, _encode_time(created_at)),
            )
            conn.commit()
        return User(id=user_id, email=email, name=name, created_at=created_at)

    def _get_one(self, where: str, value: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, email, name, created_at FROM users WHERE %s = ?" % where,
                (value,),
            ).fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            created_at=_decode_time(row["created_at"]),
        )

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._get_one("id", user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._get_one("email", email)


class MediaRepository(BaseRepository):
    """Reads and writes the media_items table."""

    def create(self, item: MediaItem) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO media_items (
                    id, type, title, original_title, year, cover_url,
                    creators, genres, duration, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.type,
                    item.title,
                    item.original_title,
                    item.year,
                    item.cover_url,
                    _encode_json(item.creators),
                    _encode_json(item.genres),
                    item.duration,
                    _encode_json(item.metadata),
                    _encode_time(item.created_at),
                ),
            )
            conn.commit()

    def update(self, item: MediaItem) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE media_items SET
                    type = ?, title = ?, original_title = ?, year = ?, cover_url = ?,
                    creators = ?, genres = ?, duration = ?, metadata = ?
                WHERE id = ?
                """,
                (
                    item.type,
                    item.title,
                    item.original_title,
                    item.year,
                    item.cover_url,
                    _encode_json(item.creators),
                    _encode_json(item.genres),
                    item.duration,
                    _encode_json(item.metadata),
                    item.id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_by_id(self, media_id: str) -> Optional[MediaItem]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT %s FROM media_items WHERE id = ?" % ", ".join(MEDIA_COLUMNS),
                (media_id,),
            ).fetchone()
        return _row_to_media(row) if row else None

    def search(self, query: str, media_type: Optional[str] = None, limit: int = 20) -> List[MediaItem]:
        """Case-insensitive substring match on title, ordered by title."""
        sql = "SELECT %s FROM media_items WHERE instr(casefold(title), casefold(?)) > 0" % ", ".join(
            MEDIA_COLUMNS
        )
        args: List[Any] = [query]

        if media_type is not None:
            sql += " AND type = ?"
            args.append(media_type)

        sql += " ORDER BY casefold(title), title, created_at LIMIT ?"
        args.append(limit)

        with self._connection() as conn:
            rows = conn.execute(sql, args).fetchall()
        return [_row_to_media(row) for row in rows]

    def find_exact(self, title: str, media_type: str) -> Optional[MediaItem]:
        """Oldest item whose title and type match exactly."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT %s FROM media_items WHERE title = ? AND type = ? "
                "ORDER BY created_at LIMIT 1" % ", ".join(MEDIA_COLUMNS),
                (title, media_type),
            ).fetchone()
        return _row_to_media(row) if row else None


class EntryRepository(BaseRepository):
    """Reads and writes the entries table, always joined with media."""

    UPDATABLE = ("status", "rating", "review_md", "progress", "started_at", "finished_at")

    def create(self, entry: Entry) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO entries (
                    id, user_id, media_id, status, rating, review_md,
                    progress, started_at, finished_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.media_id,
                    entry.status,
                    entry.rating,
                    entry.review_md,
                    _encode_json(entry.progress),
                    _encode_time(entry.started_at),
                    _encode_time(entry.finished_at),
                    _encode_time(entry.updated_at),
                ),
            )
            conn.commit()

    def get_by_id(self, entry_id: str) -> Optional[Entry]:
        with self._connection() as conn:
            row = conn.execute(ENTRY_SELECT + " WHERE e.id = ?", (entry_id,)).fetchone()
        return _row_to_entry(row) if row else None

    def list_by_user(
        self, user_id: str, status: Optional[str] = None, media_type: Optional[str] = None
    ) -> List[Entry]:
        sql = ENTRY_SELECT + " WHERE e.user_id = ?"
        args: List[Any] = [user_id]

        if status is not None:
            sql += " AND e.status = ?"
            args.append(status)

        if media_type is not None:
            sql += " AND m.type = ?"
            args.append(media_type)

        sql += " ORDER BY e.updated_at DESC, e.rowid DESC"

        with self._connection() as conn:
            rows = conn.execute(sql, args).fetchall()
        return [_row_to_entry(row) for row in rows]

    def list_by_user_and_media(self, user_id: str, media_id: str) -> List[Entry]:
        with self._connection() as conn:
            rows = conn.execute(
                ENTRY_SELECT + " WHERE e.user_id = ? AND e.media_id = ?"
                " ORDER BY e.updated_at DESC, e.rowid DESC",
                (user_id, media_id),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def update(self, entry_id: str, fields: Dict[str, Any], updated_at: datetime) -> bool:
        """Set the given columns; unknown keys are rejected."""
        unknown = set(fields) - set(self.UPDATABLE)
        if unknown:
            raise ValueError("Cannot update entry fields: %s" % ", ".join(sorted(unknown)))

        values: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "progress":
                value = _encode_json(value)
            elif key in ("started_at", "finished_at"):
                value = _encode_time(value)
            values[key] = value
        values["updated_at"] = _encode_time(updated_at)

        assignments = ", ".join("%s = ?" % key for key in values)
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE entries SET %s WHERE id = ?" % assignments,
                list(values.values()) + [entry_id],
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, entry_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
            conn.commit()
            return cursor.rowcount > 0


class CollectionRepository(BaseRepository):
    """Reads and writes collections and their position-ordered membership."""

    def create(self, collection: Collection) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO collections (id, user_id, title, is_public, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (
                    collection.id,
                    collection.user_id,
                    collection.title,
                    int(collection.is_public),
                    _encode_time(collection.created_at),
                ),
            )
            conn.commit()

    def get_by_id(self, collection_id: str) -> Optional[Collection]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, user_id, title, is_public, created_at FROM collections WHERE id = ?",
                (collection_id,),
            ).fetchone()
        return _row_to_collection(row) if row else None

    def list_by_user(self, user_id: str) -> List[Collection]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT id, user_id, title, is_public, created_at FROM collections"
                " WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def update(self, collection_id: str, title: str, is_public: bool) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE collections SET title = ?, is_public = ? WHERE id = ?",
                (title, int(is_public), collection_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, collection_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_entries(self, collection_id: str) -> List[Entry]:
        """Member entries ordered by position, each joined with its media."""
        with self._connection() as conn:
            rows = conn.execute(
                ENTRY_SELECT
                + " JOIN collection_entries ce ON ce.entry_id = e.id"
                " WHERE ce.collection_id = ? ORDER BY ce.position ASC",
                (collection_id,),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def add_entries(self, collection_id: str, entry_ids: List[str]) -> int:
        """
        Append entries after the current last position.

        Entries that are already members are skipped.

        Returns:
            Number of entries actually added
        """
        added = 0
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COALESCE(MAX(position), -1) FROM collection_entries WHERE collection_id = ?",
                (collection_id,),
            )
            position = cursor.fetchone()[0]
            for entry_id in entry_ids:
                cursor.execute(
                    "INSERT OR IGNORE INTO collection_entries (collection_id, entry_id, position)"
                    " VALUES (?, ?, ?)",
                    (collection_id, entry_id, position + 1),
                )
                if cursor.rowcount > 0:
                    position += 1
                    added += 1
            conn.commit()
        return added

    def remove_entries(self, collection_id: str, entry_ids: List[str]) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            removed = 0
            for entry_id in entry_ids:
                cursor.execute(
                    "DELETE FROM collection_entries WHERE collection_id = ? AND entry_id = ?",
                    (collection_id, entry_id),
                )
                removed += cursor.rowcount
            conn.commit()
        return removed

    def clear_entries(self, collection_id: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM collection_entries WHERE collection_id = ?", (collection_id,))
            conn.commit()


class ShareRepository(BaseRepository):
    """Reads and writes share tokens."""

    def create(self, share: ShareToken) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO share_tokens (token, kind, target_id, created_at, expires_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (
                    share.token,
                    share.kind,
                    share.target_id,
                    _encode_time(share.created_at),
                    _encode_time(share.expires_at),
                ),
            )
            conn.commit()

    def get_by_token(self, token: str) -> Optional[ShareToken]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT token, kind, target_id, created_at, expires_at FROM share_tokens"
                " WHERE token = ?",
                (token,),
            ).fetchone()
        if row is None:
            return None
        return ShareToken(
            token=row["token"],
            kind=row["kind"],
            target_id=row["target_id"],
            created_at=_decode_time(row["created_at"]),
            expires_at=_decode_time(row["expires_at"]),
        )


class ConfigRepository(BaseRepository):
    """Key/value configuration storage."""

    def initialize_defaults(self, defaults: Dict[str, Optional[str]]) -> None:
        """Insert defaults for keys that have never been set."""
        with self._connection() as conn:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO config (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, str(value), _encode_time(utcnow())),
                )
            conn.commit()

    def get(self, key: str) -> Optional[ConfigEntry]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT key, value, updated_at FROM config WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return ConfigEntry(
            key=row["key"], value=row["value"], updated_at=_decode_time(row["updated_at"])
        )

    def set(self, key: str, value: str) -> bool:
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO config (key, value, updated_at) VALUES (?, ?, ?)"
                " ON CONFLICT(key) DO UPDATE SET value = excluded.value,"
                " updated_at = excluded.updated_at",
                (key, value, _encode_time(utcnow())),
            )
            conn.commit()
        return True

    def get_all(self) -> List[ConfigEntry]:
        with self._connection() as conn:
            rows = conn.execute("SELECT key, value, updated_at FROM config ORDER BY key").fetchall()
        return [
            ConfigEntry(key=row["key"], value=row["value"], updated_at=_decode_time(row["updated_at"]))
            for row in rows
        ]
