"""
SQLite store for the Logbook server.

This module manages the single SQLite database that stores:
- Users and their password hashes
- Sessions (opaque token -> user, with expiry)
- Logs with their field schema and optional share token
- Log memberships (log_shares) granted by redeeming a share token
- Log entries with their raw field values

The store is a thin persistence collaborator. It does no access control and
no value validation; callers do that before writing.

Invariants:
    - One connection per operation, closed when the operation ends
    - Multi-statement writes run in a single BEGIN IMMEDIATE transaction
    - Uniqueness violations surface as ConflictError, never as raw sqlite errors
    - Deleting a log cascades to its entries and memberships
    - Expired sessions are never returned but are not swept here

How to change safely:
    - Schema migrations must be backward compatible
    - Add new unique constraints only with a matching ConflictError message
    - Keep timestamps in Unix milliseconds

Table schema:
    users:
        - id TEXT PRIMARY KEY (UUID)
        - username TEXT (as registered)
        - username_key TEXT (casefolded username, unique)
        - email TEXT NULL (unique when present)
        - password_hash TEXT
        - created_at INTEGER (Unix ms)

    sessions:
        - token BLOB PRIMARY KEY (32 random bytes)
        - user_id TEXT -> users.id
        - created_at INTEGER
        - expires_at INTEGER

    logs:
        - id TEXT PRIMARY KEY (UUID)
        - user_id TEXT -> users.id (owner)
        - name TEXT (as entered)
        - name_key TEXT (casefolded name, unique per owner)
        - fields_json TEXT (JSON list of field definitions)
        - share_token BLOB NULL (unique when present)
        - created_at INTEGER
        - updated_at INTEGER

    log_shares:
        - id TEXT PRIMARY KEY (UUID)
        - log_id TEXT -> logs.id ON DELETE CASCADE
        - user_id TEXT -> users.id
        - created_at INTEGER
        - UNIQUE (log_id, user_id)

    log_entries:
        - id TEXT PRIMARY KEY (UUID)
        - log_id TEXT -> logs.id ON DELETE CASCADE
        - user_id TEXT -> users.id (author)
        - fields_json TEXT
        - occurred_at INTEGER
        - created_at INTEGER
        - updated_at INTEGER
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def name_key(value: str) -> str:
    """Case-insensitive comparison key for usernames and log names.

    SQLite's lower() only folds ASCII, so the key is computed here.
    """
    return value.casefold()


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    return str(error).startswith("UNIQUE constraint failed")


@dataclass
class UserRecord:
    """A registered user.

    Attributes:
        id: User identifier (UUID)
        username: Display name, unique case-insensitively
        email: Optional contact address, unique when present
    """

    id: str
    username: str
    email: str | None = None


@dataclass
class LogRecord:
    """A log row.

    Attributes:
        id: Log identifier (UUID)
        owner_id: Owning user
        name: Display name, unique per owner case-insensitively
        fields: Raw field definitions (list of dicts)
        share_token: Active share token bytes, if any
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: str
    owner_id: str
    name: str
    fields: list[dict[str, Any]] = field(default_factory=list)
    share_token: bytes | None = None
    created_at: int = 0
    updated_at: int = 0


@dataclass
class MembershipRecord:
    id: str
    log_id: str
    user_id: str
    username: str
    created_at: int


@dataclass
class EntryRecord:
    """A log entry row.

    ``fields`` is the raw value map as written. It may hold names that are no
    longer in the log's schema.
    """

    id: str
    log_id: str
    user_id: str
    username: str
    fields: dict[str, Any]
    occurred_at: int
    created_at: int
    updated_at: int


class LogbookStore:
    """SQLite-backed store for users, sessions, logs, memberships and entries.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = LogbookStore("/var/lib/logbook/logbook.db")
        >>> await store.initialize()
        >>> user = await store.create_user("alice", None, password_hash)
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        database_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            database_path: Path to the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.database_path = Path(database_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection for one operation."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.database_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                username_key TEXT NOT NULL,
                email TEXT,
                password_hash TEXT NOT NULL,
                created_at INTEGER NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username ON users(username_key);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email);

            CREATE TABLE IF NOT EXISTS sessions (
                token BLOB PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at INTEGER NOT NULL,
                expires_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);

            CREATE TABLE IF NOT EXISTS logs (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                name_key TEXT NOT NULL,
                fields_json TEXT NOT NULL DEFAULT '[]',
                share_token BLOB,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_logs_owner_name ON logs(user_id, name_key);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_logs_share_token ON logs(share_token);

            CREATE TABLE IF NOT EXISTS log_shares (
                id TEXT PRIMARY KEY,
                log_id TEXT NOT NULL REFERENCES logs(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at INTEGER NOT NULL,
                UNIQUE (log_id, user_id)
            );

            CREATE TABLE IF NOT EXISTS log_entries (
                id TEXT PRIMARY KEY,
                log_id TEXT NOT NULL REFERENCES logs(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                fields_json TEXT NOT NULL DEFAULT '{}',
                occurred_at INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_entries_log ON log_entries(log_id, occurred_at DESC);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        with self._get_connection() as conn:
            self._create_schema(conn)
        logger.info(f"Initialized database: {self.database_path}")

    # --- Users ---

    async def create_user(
        self,
        username: str,
        email: str | None,
        password_hash: str,
    ) -> UserRecord:
        """Insert a user.

        Raises:
            ConflictError: Username or email already taken
        """
        user_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, username, username_key, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, username, name_key(username), email, password_hash, _now_ms()),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    raise
                raise _user_conflict(e) from e

        logger.debug("Created user", extra={"user_id": user_id})
        return UserRecord(id=user_id, username=username, email=email)

    async def get_user(self, user_id: str) -> UserRecord | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id, username, email FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            return _row_to_user(row) if row else None

    async def get_user_credentials(self, username: str) -> tuple[UserRecord, str] | None:
        """Look up a user by username (case-insensitive) with its password hash."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT id, username, email, password_hash FROM users
                WHERE username_key = ?
                """,
                (name_key(username),),
            ).fetchone()
            if not row:
                return None
            return _row_to_user(row), row["password_hash"]

    async def get_password_hash(self, user_id: str) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            return row["password_hash"] if row else None

    async def update_password_hash(self, user_id: str, password_hash: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )
            return cursor.rowcount > 0

    async def update_email(self, user_id: str, email: str | None) -> UserRecord | None:
        """Set or clear a user's email.

        Raises:
            ConflictError: Email already used by another user
        """
        with self._get_connection() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE users SET email = ? WHERE id = ?",
                    (email, user_id),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    raise
                raise _user_conflict(e) from e
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT id, username, email FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            return _row_to_user(row)

    # --- Sessions ---

    async def create_session(
        self,
        user_id: str,
        token: bytes,
        created_at: int,
        expires_at: int,
    ) -> None:
        """Persist a session.

        Raises:
            ConflictError: Token already exists
        """
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO sessions (token, user_id, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (token, user_id, created_at, expires_at),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    raise
                raise ConflictError("session token already exists", "sessions.token") from e

    async def get_session_user(self, token: bytes, now: int) -> UserRecord | None:
        """Return the user for a live session, or None if absent or expired."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT u.id, u.username, u.email
                FROM sessions s
                JOIN users u ON s.user_id = u.id
                WHERE s.token = ? AND s.expires_at > ?
                """,
                (token, now),
            ).fetchone()
            return _row_to_user(row) if row else None

    async def delete_session(self, token: bytes) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return cursor.rowcount > 0

    # --- Logs ---

    async def create_log(
        self,
        owner_id: str,
        name: str,
        fields: list[dict[str, Any]],
    ) -> LogRecord:
        """Insert a log.

        Raises:
            ConflictError: Owner already has a log with that name
        """
        log_id = str(uuid.uuid4())
        now = _now_ms()
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO logs (id, user_id, name, name_key, fields_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (log_id, owner_id, name, name_key(name), json.dumps(fields), now, now),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    raise
                raise _log_name_conflict() from e

        logger.debug("Created log", extra={"log_id": log_id, "owner_id": owner_id})
        return LogRecord(
            id=log_id,
            owner_id=owner_id,
            name=name,
            fields=fields,
            created_at=now,
            updated_at=now,
        )

    async def get_log(self, log_id: str) -> LogRecord | None:
        """Get a log by ID alone, not scoped to any user."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM logs WHERE id = ?", (log_id,)).fetchone()
            return _row_to_log(row) if row else None

    async def list_logs_for_user(self, user_id: str) -> list[tuple[LogRecord, bool]]:
        """List logs a user owns or is a member of, ordered by name.

        Returns:
            (log, is_owner) pairs
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM (
                    SELECT l.*, 1 AS is_owner FROM logs l WHERE l.user_id = ?
                    UNION ALL
                    SELECT l.*, 0 AS is_owner FROM logs l
                    JOIN log_shares ls ON l.id = ls.log_id WHERE ls.user_id = ?
                ) ORDER BY name_key, created_at
                """,
                (user_id, user_id),
            )
            return [(_row_to_log(row), bool(row["is_owner"])) for row in cursor.fetchall()]

    async def update_log(
        self,
        log_id: str,
        owner_id: str,
        name: str,
        fields: list[dict[str, Any]],
    ) -> LogRecord | None:
        """Replace a log's name and schema, scoped to its owner.

        Returns:
            Updated log, or None if no log with that id is owned by owner_id

        Raises:
            ConflictError: Owner already has another log with that name
        """
        now = _now_ms()
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    UPDATE logs SET name = ?, name_key = ?, fields_json = ?, updated_at = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (name, name_key(name), json.dumps(fields), now, log_id, owner_id),
                )
                if cursor.rowcount == 0:
                    conn.execute("ROLLBACK")
                    return None
                row = conn.execute("SELECT * FROM logs WHERE id = ?", (log_id,)).fetchone()
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                if not _is_unique_violation(e):
                    raise
                raise _log_name_conflict() from e
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return _row_to_log(row)

    async def delete_log(self, log_id: str, owner_id: str) -> bool:
        """Delete a log owned by owner_id; entries and memberships cascade."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM logs WHERE id = ? AND user_id = ?",
                (log_id, owner_id),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug("Deleted log", extra={"log_id": log_id})
        return deleted

    async def set_share_token(self, log_id: str, owner_id: str, token: bytes | None) -> bool:
        """Replace (or clear) a log's share token in one statement.

        Returns:
            False if no log with that id is owned by owner_id
        """
        with self._get_connection() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE logs SET share_token = ? WHERE id = ? AND user_id = ?",
                    (token, log_id, owner_id),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    raise
                raise ConflictError("share token already exists", "logs.share_token") from e
            return cursor.rowcount > 0

    async def find_log_by_share_token(self, token: bytes) -> tuple[LogRecord, str] | None:
        """Resolve a share token to its log and the owner's username."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT l.*, u.username AS owner_username
                FROM logs l
                JOIN users u ON l.user_id = u.id
                WHERE l.share_token = ?
                """,
                (token,),
            ).fetchone()
            if not row:
                return None
            return _row_to_log(row), row["owner_username"]

    # --- Memberships ---

    async def membership_exists(self, log_id: str, user_id: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM log_shares WHERE log_id = ? AND user_id = ?",
                (log_id, user_id),
            ).fetchone()
            return row is not None

    async def add_membership(self, log_id: str, user_id: str) -> str:
        """Insert a membership row.

        Returns:
            The membership id

        Raises:
            ConflictError: The user is already a member
            NotFoundError: The log or user no longer exists
        """
        membership_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO log_shares (id, log_id, user_id, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (membership_id, log_id, user_id, _now_ms()),
                )
            except sqlite3.IntegrityError as e:
                if not _is_unique_violation(e):
                    # Log (or user) deleted since the caller looked it up
                    raise NotFoundError("log") from e
                raise ConflictError("already a member of this log", "log_shares.member") from e
        return membership_id

    async def list_memberships(self, log_id: str) -> list[MembershipRecord]:
        """List a log's members in join order."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT ls.id, ls.log_id, ls.user_id, u.username, ls.created_at
                FROM log_shares ls
                JOIN users u ON ls.user_id = u.id
                WHERE ls.log_id = ?
                ORDER BY ls.created_at, ls.rowid
                """,
                (log_id,),
            )
            return [
                MembershipRecord(
                    id=row["id"],
                    log_id=row["log_id"],
                    user_id=row["user_id"],
                    username=row["username"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]

    async def delete_membership(self, membership_id: str, log_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM log_shares WHERE id = ? AND log_id = ?",
                (membership_id, log_id),
            )
            return cursor.rowcount > 0

    # --- Entries ---

    async def create_entry(
        self,
        log_id: str,
        user_id: str,
        fields: dict[str, Any],
        occurred_at: int | None = None,
    ) -> EntryRecord:
        """Insert an entry. Values must already be validated."""
        entry_id = str(uuid.uuid4())
        now = _now_ms()
        occurred_at = occurred_at if occurred_at is not None else now

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO log_entries (id, log_id, user_id, fields_json,
                                         occurred_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (entry_id, log_id, user_id, json.dumps(fields), occurred_at, now, now),
            )
            row = conn.execute(
                "SELECT username FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        logger.debug("Created entry", extra={"log_id": log_id, "entry_id": entry_id})
        return EntryRecord(
            id=entry_id,
            log_id=log_id,
            user_id=user_id,
            username=row["username"] if row else "",
            fields=fields,
            occurred_at=occurred_at,
            created_at=now,
            updated_at=now,
        )

    async def update_entry(
        self,
        entry_id: str,
        log_id: str,
        fields: dict[str, Any],
        occurred_at: int,
    ) -> EntryRecord | None:
        """Replace an entry's values and occurred_at.

        Returns:
            Updated entry, or None if the entry is not in that log
        """
        now = _now_ms()
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    UPDATE log_entries SET fields_json = ?, occurred_at = ?, updated_at = ?
                    WHERE id = ? AND log_id = ?
                    """,
                    (json.dumps(fields), occurred_at, now, entry_id, log_id),
                )
                if cursor.rowcount == 0:
                    conn.execute("ROLLBACK")
                    return None
                row = conn.execute(
                    """
                    SELECT le.*, u.username FROM log_entries le
                    JOIN users u ON le.user_id = u.id
                    WHERE le.id = ?
                    """,
                    (entry_id,),
                ).fetchone()
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return _row_to_entry(row)

    async def delete_entry(self, entry_id: str, log_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM log_entries WHERE id = ? AND log_id = ?",
                (entry_id, log_id),
            )
            return cursor.rowcount > 0

    async def list_entries(self, log_id: str) -> list[EntryRecord]:
        """List a log's entries, most recent occurrence first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT le.*, u.username FROM log_entries le
                JOIN users u ON le.user_id = u.id
                WHERE le.log_id = ?
                ORDER BY le.occurred_at DESC, le.created_at DESC
                """,
                (log_id,),
            )
            return [_row_to_entry(row) for row in cursor.fetchall()]

    async def get_stats(self) -> dict[str, int]:
        """Row counts per table."""
        with self._get_connection() as conn:
            stats = {}
            for table in ("users", "sessions", "logs", "log_shares", "log_entries"):
                stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            return stats


def _user_conflict(error: sqlite3.IntegrityError) -> ConflictError:
    if "email" in str(error):
        return ConflictError("email already in use", "users.email")
    return ConflictError("username already taken", "users.username")


def _log_name_conflict() -> ConflictError:
    return ConflictError("a log with that name already exists", "logs.name")


def _row_to_user(row: sqlite3.Row) -> UserRecord:
    return UserRecord(id=row["id"], username=row["username"], email=row["email"])


def _row_to_log(row: sqlite3.Row) -> LogRecord:
    return LogRecord(
        id=row["id"],
        owner_id=row["user_id"],
        name=row["name"],
        fields=json.loads(row["fields_json"]),
        share_token=row["share_token"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entry(row: sqlite3.Row) -> EntryRecord:
    return EntryRecord(
        id=row["id"],
        log_id=row["log_id"],
        user_id=row["user_id"],
        username=row["username"],
        fields=json.loads(row["fields_json"]),
        occurred_at=row["occurred_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
