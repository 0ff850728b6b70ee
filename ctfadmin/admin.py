"""Privileged listing and mutation operations for administrators."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from .config import AdminSettings
from .database import Database
from .models import ALL_LEVELS, FileRecord, LogEntry, LogLevel, Notice, Role, Team, User
from .pagination import Page, PageError, fetch

logger = logging.getLogger("ctfadmin.admin")


class AdminError(Exception):
    """Base class for failures reported back to the administrator."""

    status_code = 500
    title = "Internal error"


class NotFoundError(AdminError):
    status_code = 404
    title = "Not found"


class ForbiddenError(AdminError):
    # Self deletion is a bad request, not an authorization failure.
    status_code = 400
    title = "Forbidden"


class ValidationError(AdminError):
    status_code = 400
    title = "Invalid request"


_PATCHABLE_USER_FIELDS = ("username", "email", "bio", "role", "real_name", "phone")


@dataclass(frozen=True)
class UserPatch:
    """Fields an administrator asked to change.

    Only keys present in ``fields`` are applied; everything else keeps its
    stored value.
    """

    fields: Mapping[str, object]

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "UserPatch":
        unknown = set(data) - set(_PATCHABLE_USER_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        cleaned: Dict[str, object] = {}
        for key, value in data.items():
            # None cannot clear a field; it means "leave unchanged".
            if value is None:
                continue
            if key == "role":
                try:
                    value = Role(value)
                except ValueError as exc:
                    raise ValidationError(f"Unknown role '{value}'") from exc
            elif key == "username":
                value = str(value).strip()
                if not value:
                    raise ValidationError("Username must not be empty")
            elif key == "email":
                # Stored lower-cased; an email can be changed but not cleared.
                value = str(value).strip().lower()
                if not value:
                    raise ValidationError("Email must not be empty")
            cleaned[key] = value
        return cls(fields=cleaned)

    def is_empty(self) -> bool:
        return not self.fields

    def apply(self, user: User) -> User:
        return replace(user, **self.fields)


@dataclass(frozen=True)
class NoticeInput:
    title: str
    content: str
    is_pinned: bool = False

    def validated(self) -> "NoticeInput":
        title = self.title.strip()
        if not title:
            raise ValidationError("Notice title must not be empty")
        if not self.content.strip():
            raise ValidationError("Notice content must not be empty")
        return replace(self, title=title)


class AdminService:
    """Validates preconditions and routes admin mutations to the database."""

    def __init__(self, database: Database, settings: AdminSettings) -> None:
        self._database = database
        self._settings = settings

    def _page(self, skip: int, count: int) -> Page:
        try:
            return Page.normalize(skip, count, max_count=self._settings.max_page_size)
        except PageError as exc:
            raise ValidationError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def list_users(self, skip: int = 0, count: int = 100) -> List[User]:
        return fetch(self._database.list_users, self._page(skip, count))

    def get_user(self, user_id: str) -> User:
        user = self._database.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def patch_user(self, user_id: str, patch: UserPatch) -> User:
        user = self.get_user(user_id)
        if patch.is_empty():
            return user

        updated = patch.apply(user)
        try:
            stored = self._database.update_user(updated)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not stored:
            raise NotFoundError("User not found")

        logger.info("Updated user %s fields: %s", user_id, ", ".join(sorted(patch.fields)))
        return self.get_user(user_id)

    def delete_user(self, user_id: str, caller_id: str) -> None:
        if user_id == caller_id:
            logger.warning("Administrator %s attempted to delete their own account", caller_id)
            raise ForbiddenError("You cannot delete your own account")

        if not self._database.delete_user(user_id):
            raise NotFoundError("User not found")
        logger.info("User %s deleted by %s", user_id, caller_id)

    # ------------------------------------------------------------------
    # Read-only listings
    # ------------------------------------------------------------------
    def list_teams(self, skip: int = 0, count: int = 100) -> List[Team]:
        return fetch(self._database.list_teams, self._page(skip, count))

    def list_logs(self, skip: int = 0, count: int = 50, level: str = ALL_LEVELS) -> List[LogEntry]:
        page = self._page(skip, count)
        if level == ALL_LEVELS:
            return fetch(self._database.list_logs, page)
        try:
            wanted = LogLevel(level)
        except ValueError as exc:
            raise ValidationError(f"Unknown log level '{level}'") from exc
        return fetch(lambda skip, count: self._database.list_logs(skip, count, wanted), page)

    def list_files(self, skip: int = 0, count: int = 50) -> List[FileRecord]:
        return fetch(self._database.list_files, self._page(skip, count))

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------
    def list_notices(self) -> List[Notice]:
        return self._database.list_notices()

    def create_notice(self, payload: NoticeInput) -> Notice:
        payload = payload.validated()
        notice = self._database.create_notice(payload.title, payload.content, is_pinned=payload.is_pinned)
        logger.info("Notice %s created", notice.id)
        return notice

    def update_notice(self, notice_id: int, payload: NoticeInput, *, now: Optional[datetime] = None) -> Notice:
        payload = payload.validated()
        if self._database.get_notice(notice_id) is None:
            raise NotFoundError("Notice not found")

        updated = Notice(
            id=notice_id,
            title=payload.title,
            content=payload.content,
            is_pinned=payload.is_pinned,
            time=now or datetime.now(timezone.utc),
        )
        if not self._database.update_notice(updated):
            raise NotFoundError("Notice not found")
        logger.info("Notice %s updated (pinned=%s)", notice_id, updated.is_pinned)
        return updated

    def delete_notice(self, notice_id: int) -> None:
        if not self._database.delete_notice(notice_id):
            raise NotFoundError("Notice not found")
        logger.info("Notice %s deleted", notice_id)


__all__ = [
    "AdminError",
    "AdminService",
    "ForbiddenError",
    "NoticeInput",
    "NotFoundError",
    "UserPatch",
    "ValidationError",
]
