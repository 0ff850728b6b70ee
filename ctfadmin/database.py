"""SQLite-backed persistence for users, teams, logs, files and notices."""
from __future__ import annotations

import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from passlib.context import CryptContext

from .config import resolve_database_path
from .models import FileRecord, LogEntry, LogLevel, Notice, Role, Team, User


API_KEY_PREFIX = "ctf_"
_API_KEY_LOOKUP_LENGTH = 12

_api_key_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed-width UTC strings sort chronologically inside SQLite.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


class Database:
    """Simple wrapper around SQLite acting as the resource repository.

    Every public method opens its own connection and commits before it
    returns, so callers never observe an uncommitted write.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT UNIQUE,
                    bio TEXT NOT NULL DEFAULT '',
                    role TEXT NOT NULL DEFAULT 'User',
                    real_name TEXT NOT NULL DEFAULT '',
                    phone TEXT,
                    api_key_prefix TEXT NOT NULL,
                    api_key_hash TEXT NOT NULL,
                    registered_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    bio TEXT,
                    locked INTEGER NOT NULL DEFAULT 0,
                    captain_id TEXT REFERENCES users(id) ON DELETE SET NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS team_members (
                    team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    PRIMARY KEY (team_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    time TEXT NOT NULL,
                    level TEXT NOT NULL,
                    message TEXT NOT NULL,
                    actor TEXT,
                    ip TEXT,
                    status TEXT
                );

                CREATE TABLE IF NOT EXISTS files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    hash TEXT NOT NULL UNIQUE,
                    reference_count INTEGER NOT NULL DEFAULT 1,
                    uploaded_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    is_pinned INTEGER NOT NULL DEFAULT 0,
                    time TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_api_key_prefix ON users(api_key_prefix);
                CREATE INDEX IF NOT EXISTS idx_team_members_user_id ON team_members(user_id);
                CREATE INDEX IF NOT EXISTS idx_logs_time ON logs(time);
                CREATE INDEX IF NOT EXISTS idx_logs_level ON logs(level);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        username: str,
        email: Optional[str],
        *,
        role: Role = Role.USER,
        bio: str = "",
        real_name: str = "",
        phone: Optional[str] = None,
    ) -> Tuple[User, str]:
        """Create a new user and return it along with the generated API key."""

        normalized_name = username.strip()
        if not normalized_name:
            raise ValueError("Username must not be empty")

        user_id = uuid.uuid4().hex
        registered_at = _current_timestamp()
        api_key = _generate_api_key()
        normalized_email = email.strip().lower() if email else None

        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (
                        id, username, email, bio, role, real_name, phone,
                        api_key_prefix, api_key_hash, registered_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        normalized_name,
                        normalized_email,
                        bio,
                        Role(role).value,
                        real_name,
                        phone,
                        api_key[:_API_KEY_LOOKUP_LENGTH],
                        _api_key_context.hash(api_key),
                        _serialize_datetime(registered_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A user with that name or email already exists") from exc

        user = User(
            id=user_id,
            username=normalized_name,
            email=normalized_email,
            bio=bio,
            role=Role(role),
            real_name=real_name,
            phone=phone,
            registered_at=registered_at,
        )
        return user, api_key

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        if not api_key.startswith(API_KEY_PREFIX):
            return None
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE api_key_prefix = ?",
                (api_key[:_API_KEY_LOOKUP_LENGTH],),
            ).fetchall()

        for row in rows:
            if _api_key_context.verify(api_key, row["api_key_hash"]):
                return self._row_to_user(row)
        return None

    def list_users(self, skip: int, count: int) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users ORDER BY id LIMIT ? OFFSET ?",
                (count, skip),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def update_user(self, user: User) -> bool:
        """Write every mutable column of ``user``; return ``False`` if it vanished."""

        normalized_email = user.email.strip().lower() if user.email else None
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    UPDATE users
                       SET username = ?, email = ?, bio = ?, role = ?, real_name = ?, phone = ?
                     WHERE id = ?
                    """,
                    (
                        user.username,
                        normalized_email,
                        user.bio,
                        Role(user.role).value,
                        user.real_name,
                        user.phone,
                        user.id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A user with that name or email already exists") from exc
            return cursor.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    def rotate_api_key(self, user_id: str) -> Tuple[User, str]:
        user = self.get_user(user_id)
        if user is None:
            raise ValueError("User not found")

        api_key = _generate_api_key()
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET api_key_prefix = ?, api_key_hash = ? WHERE id = ?",
                (api_key[:_API_KEY_LOOKUP_LENGTH], _api_key_context.hash(api_key), user_id),
            )
        return user, api_key

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------
    def create_team(
        self,
        name: str,
        *,
        bio: Optional[str] = None,
        captain_id: Optional[str] = None,
        members: Iterable[str] = (),
        locked: bool = False,
    ) -> Team:
        created_at = _current_timestamp()
        member_ids = tuple(dict.fromkeys(members))
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO teams (name, bio, locked, captain_id, created_at) VALUES (?, ?, ?, ?, ?)",
                (name, bio, int(bool(locked)), captain_id, _serialize_datetime(created_at)),
            )
            team_id = int(cursor.lastrowid)
            conn.executemany(
                "INSERT INTO team_members (team_id, user_id) VALUES (?, ?)",
                [(team_id, member_id) for member_id in member_ids],
            )
        return Team(
            id=team_id,
            name=name,
            bio=bio,
            locked=locked,
            captain_id=captain_id,
            created_at=created_at,
            members=member_ids,
        )

    def list_teams(self, skip: int, count: int) -> List[Team]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM teams ORDER BY id LIMIT ? OFFSET ?",
                (count, skip),
            ).fetchall()
            teams: List[Team] = []
            for row in rows:
                members = conn.execute(
                    "SELECT user_id FROM team_members WHERE team_id = ? ORDER BY user_id",
                    (row["id"],),
                ).fetchall()
                teams.append(self._row_to_team(row, tuple(str(m["user_id"]) for m in members)))
        return teams

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    def append_log(
        self,
        level: LogLevel,
        message: str,
        *,
        actor: Optional[str] = None,
        ip: Optional[str] = None,
        status: Optional[str] = None,
        time: Optional[datetime] = None,
    ) -> LogEntry:
        logged_at = time or _current_timestamp()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO logs (time, level, message, actor, ip, status) VALUES (?, ?, ?, ?, ?, ?)",
                (_serialize_datetime(logged_at), LogLevel(level).value, message, actor, ip, status),
            )
            log_id = int(cursor.lastrowid)
        return LogEntry(
            id=log_id,
            time=logged_at,
            level=LogLevel(level),
            message=message,
            actor=actor,
            ip=ip,
            status=status,
        )

    def list_logs(self, skip: int, count: int, level: Optional[LogLevel] = None) -> List[LogEntry]:
        """Return log entries newest first, optionally restricted to one level."""

        query = "SELECT * FROM logs"
        params: List[object] = []
        if level is not None:
            query += " WHERE level = ?"
            params.append(LogLevel(level).value)
        query += " ORDER BY time DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([count, skip])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_log(row) for row in rows]

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------
    def add_file(self, name: str, size: int, file_hash: str, *, reference_count: int = 1) -> FileRecord:
        uploaded_at = _current_timestamp()
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO files (name, size, hash, reference_count, uploaded_at) VALUES (?, ?, ?, ?, ?)",
                    (name, size, file_hash, reference_count, _serialize_datetime(uploaded_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A file with that hash already exists") from exc
            file_id = int(cursor.lastrowid)
        return FileRecord(
            id=file_id,
            name=name,
            size=size,
            hash=file_hash,
            reference_count=reference_count,
            uploaded_at=uploaded_at,
        )

    def list_files(self, skip: int, count: int) -> List[FileRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM files ORDER BY name, id LIMIT ? OFFSET ?",
                (count, skip),
            ).fetchall()
        return [self._row_to_file(row) for row in rows]

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------
    def create_notice(self, title: str, content: str, *, is_pinned: bool = False) -> Notice:
        published = _current_timestamp()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO notices (title, content, is_pinned, time) VALUES (?, ?, ?, ?)",
                (title, content, int(bool(is_pinned)), _serialize_datetime(published)),
            )
            notice_id = int(cursor.lastrowid)
        return Notice(id=notice_id, title=title, content=content, is_pinned=is_pinned, time=published)

    def get_notice(self, notice_id: int) -> Optional[Notice]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM notices WHERE id = ?", (notice_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_notice(row)

    def list_notices(self) -> List[Notice]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM notices ORDER BY time DESC, id DESC").fetchall()
        return [self._row_to_notice(row) for row in rows]

    def update_notice(self, notice: Notice) -> bool:
        if notice.id is None:
            raise ValueError("Cannot update a notice that has not been saved")
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notices SET title = ?, content = ?, is_pinned = ?, time = ? WHERE id = ?",
                (
                    notice.title,
                    notice.content,
                    int(bool(notice.is_pinned)),
                    _serialize_datetime(notice.time),
                    notice.id,
                ),
            )
            return cursor.rowcount > 0

    def delete_notice(self, notice_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM notices WHERE id = ?", (notice_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            username=str(row["username"]),
            email=row["email"],
            bio=str(row["bio"]),
            role=Role(row["role"]),
            real_name=str(row["real_name"]),
            phone=row["phone"],
            registered_at=_parse_datetime(str(row["registered_at"])),
        )

    def _row_to_team(self, row: sqlite3.Row, members: Tuple[str, ...]) -> Team:
        return Team(
            id=int(row["id"]),
            name=str(row["name"]),
            bio=row["bio"],
            locked=bool(row["locked"]),
            captain_id=row["captain_id"],
            created_at=_parse_datetime(str(row["created_at"])),
            members=members,
        )

    def _row_to_log(self, row: sqlite3.Row) -> LogEntry:
        return LogEntry(
            id=int(row["id"]),
            time=_parse_datetime(str(row["time"])),
            level=LogLevel(row["level"]),
            message=str(row["message"]),
            actor=row["actor"],
            ip=row["ip"],
            status=row["status"],
        )

    def _row_to_file(self, row: sqlite3.Row) -> FileRecord:
        return FileRecord(
            id=int(row["id"]),
            name=str(row["name"]),
            size=int(row["size"]),
            hash=str(row["hash"]),
            reference_count=int(row["reference_count"]),
            uploaded_at=_parse_datetime(str(row["uploaded_at"])),
        )

    def _row_to_notice(self, row: sqlite3.Row) -> Notice:
        return Notice(
            id=int(row["id"]),
            title=str(row["title"]),
            content=str(row["content"]),
            is_pinned=bool(row["is_pinned"]),
            time=_parse_datetime(str(row["time"])),
        )


__all__ = ["API_KEY_PREFIX", "Database", "resolve_database_path"]
