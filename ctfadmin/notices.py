"""Client-side notice cache that merges server mutations without refetching."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

from .client import NoticeAPI, NoticeAPIError
from .models import Notice
from .ordering import order_notices

logger = logging.getLogger("ctfadmin.notices")

SUCCESS = "success"
ERROR = "error"

FAILURE_TITLE = "Something went wrong"


@dataclass(frozen=True)
class Notification:
    level: str
    title: str
    message: str


@dataclass(frozen=True)
class PendingDelete:
    """A delete awaiting explicit confirmation from the operator."""

    notice: Notice
    title: str
    message: str


def _discard(_: Notification) -> None:
    return None


class NoticeCacheController:
    """Own the session's copy of the notice list.

    ``pin`` and ``request_delete`` share a single-flight guard: while a pin
    request is outstanding both return immediately without touching the
    network. Saving (create or edit) is never guarded.
    """

    def __init__(
        self,
        api: NoticeAPI,
        *,
        notify: Optional[Callable[[Notification], None]] = None,
        notices: Iterable[Notice] = (),
    ) -> None:
        self._api = api
        self._notify = notify or _discard
        self._notices: List[Notice] = list(notices)
        self._disabled = False

    async def __aenter__(self) -> "NoticeCacheController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def notices(self) -> Tuple[Notice, ...]:
        return tuple(self._notices)

    def ordered(self) -> Tuple[Notice, ...]:
        return order_notices(self.notices)

    async def close(self) -> None:
        self._disabled = False
        await self._api.aclose()

    async def load(self) -> Tuple[Notice, ...]:
        try:
            fetched = await self._api.list_notices()
        except NoticeAPIError as exc:
            self._report_failure(exc)
            raise
        self._notices = list(fetched)
        return self.notices

    async def pin(self, notice: Notice) -> bool:
        """Toggle ``is_pinned`` on the server, then mirror it locally."""

        if self._disabled:
            logger.debug("Ignoring pin of notice %s while another action is in flight", notice.id)
            return False
        if notice.id is None:
            raise ValueError("Cannot pin a notice that has not been saved")

        self._disabled = True
        toggled = replace(notice, is_pinned=not notice.is_pinned)
        try:
            await self._api.set_pinned(notice.id, toggled)
        except NoticeAPIError as exc:
            self._report_failure(exc)
            return False
        else:
            self._replace_local(toggled)
            return True
        finally:
            self._disabled = False

    def request_delete(self, notice: Notice) -> Optional[PendingDelete]:
        if self._disabled:
            return None
        if notice.id is None:
            raise ValueError("Cannot delete a notice that has not been saved")
        return PendingDelete(
            notice=notice,
            title="Delete notice",
            message=f'Are you sure you want to delete notice "{notice.title or ""}"?',
        )

    async def confirm_delete(self, pending: PendingDelete) -> bool:
        notice_id = pending.notice.id
        try:
            await self._api.delete_notice(notice_id)  # type: ignore[arg-type]
        except NoticeAPIError as exc:
            self._report_failure(exc)
            return False

        self._notices = [entry for entry in self._notices if entry.id != notice_id]
        self._notify(Notification(level=SUCCESS, title="", message="Notice deleted"))
        return True

    async def save(self, draft: Notice) -> Notice:
        """Create ``draft`` when it has no id, otherwise update it."""

        try:
            if draft.id is None:
                saved = await self._api.create_notice(draft)
            else:
                saved = await self._api.update_notice(draft.id, draft)
        except NoticeAPIError as exc:
            self._report_failure(exc)
            raise

        self.upsert_local(saved)
        message = "Notice created" if draft.id is None else "Notice updated"
        self._notify(Notification(level=SUCCESS, title="", message=message))
        return saved

    def upsert_local(self, notice: Notice) -> None:
        for index, entry in enumerate(self._notices):
            if entry.id == notice.id:
                self._notices[index] = notice
                return
        self._notices.insert(0, notice)

    def _replace_local(self, notice: Notice) -> None:
        self._notices = [notice if entry.id == notice.id else entry for entry in self._notices]

    def _report_failure(self, exc: NoticeAPIError) -> None:
        logger.warning("Notice request failed: %s", exc.title)
        self._notify(Notification(level=ERROR, title=FAILURE_TITLE, message=exc.title))


__all__ = [
    "ERROR",
    "NoticeCacheController",
    "Notification",
    "PendingDelete",
    "SUCCESS",
]
