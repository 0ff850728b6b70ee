"""Domain models for the CTF administration core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class Role(str, Enum):
    """Account roles, ordered from least to most privileged."""

    BANNED = "Banned"
    USER = "User"
    MONITOR = "Monitor"
    ADMIN = "Admin"


class LogLevel(str, Enum):
    DEBUG = "Debug"
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"


ALL_LEVELS = "All"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the database."""

    id: str
    username: str
    email: Optional[str]
    bio: str
    role: Role
    real_name: str
    phone: Optional[str]
    registered_at: datetime


@dataclass(frozen=True)
class Team:
    id: int
    name: str
    bio: Optional[str]
    locked: bool
    captain_id: Optional[str]
    created_at: datetime
    members: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LogEntry:
    id: int
    time: datetime
    level: LogLevel
    message: str
    actor: Optional[str] = None
    ip: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class FileRecord:
    """Metadata for a stored file; the bytes live behind ``hash``."""

    id: int
    name: str
    size: int
    hash: str
    reference_count: int
    uploaded_at: datetime


@dataclass(frozen=True)
class Notice:
    """A notice as seen by both the server and the client cache.

    ``id`` is ``None`` only for drafts that have never been saved.
    """

    id: Optional[int]
    title: str
    content: str
    is_pinned: bool
    time: datetime


__all__ = [
    "ALL_LEVELS",
    "FileRecord",
    "LogEntry",
    "LogLevel",
    "Notice",
    "Role",
    "Team",
    "User",
]
