"""Tests for the client-side notice cache controller."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List

import anyio
import httpx
import pytest

from ctfadmin.client import NoticeAPI, NoticeAPIError
from ctfadmin.models import Notice
from ctfadmin.notices import ERROR, SUCCESS, NoticeCacheController, Notification

T1 = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
T2 = datetime(2024, 3, 2, 9, 30, tzinfo=timezone.utc)


def _payload(notice: Notice) -> Dict[str, object]:
    return {
        "id": notice.id,
        "title": notice.title,
        "content": notice.content,
        "isPinned": notice.is_pinned,
        "time": notice.time.isoformat().replace("+00:00", "Z"),
    }


class FakeNoticeServer:
    """In-memory stand-in for ``/Edit/Notices`` served through httpx.MockTransport."""

    def __init__(self, notices: List[Notice]) -> None:
        self.notices = {notice.id: notice for notice in notices}
        self.requests: List[httpx.Request] = []
        self.fail_with: tuple[int, Dict[str, object]] | None = None
        self.next_id = max(self.notices, default=0) + 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status_code, body = self.fail_with
            return httpx.Response(status_code, json=body)

        parts = request.url.path.rstrip("/").split("/")
        if request.method == "GET":
            return httpx.Response(200, json=[_payload(n) for n in self.notices.values()])
        if request.method == "POST":
            body = json.loads(request.content)
            notice = Notice(self.next_id, body["title"], body["content"], body["isPinned"], T2)
            self.next_id += 1
            self.notices[notice.id] = notice
            return httpx.Response(200, json=_payload(notice))

        notice_id = int(parts[-1])
        if notice_id not in self.notices:
            return httpx.Response(404, json={"title": "Notice not found", "status": 404})
        if request.method == "PUT":
            body = json.loads(request.content)
            notice = Notice(notice_id, body["title"], body["content"], body["isPinned"], T2)
            self.notices[notice_id] = notice
            return httpx.Response(200, json=_payload(notice))
        del self.notices[notice_id]
        return httpx.Response(200)


def _controller(server: FakeNoticeServer, notices: List[Notice], sink: List[Notification]) -> NoticeCacheController:
    api = NoticeAPI(
        "http://testserver/api",
        "ctf_test-key",
        transport=httpx.MockTransport(server.handler),
    )
    return NoticeCacheController(api, notify=sink.append, notices=notices)


@pytest.mark.anyio
async def test_load_replaces_local_collection() -> None:
    first = Notice(1, "One", "body", False, T1)
    server = FakeNoticeServer([first])
    sink: List[Notification] = []

    async with _controller(server, [], sink) as controller:
        loaded = await controller.load()

    assert loaded == (first,)
    assert server.requests[0].headers["authorization"] == "Bearer ctf_test-key"
    assert server.requests[0].url.path == "/api/Edit/Notices"


@pytest.mark.anyio
async def test_pin_toggles_flag_and_preserves_other_fields() -> None:
    notice = Notice(1, "One", "body", False, T1)
    server = FakeNoticeServer([notice])
    sink: List[Notification] = []

    async with _controller(server, [notice], sink) as controller:
        assert await controller.pin(notice) is True
        assert controller.notices == (replace(notice, is_pinned=True),)
        assert controller.disabled is False

    [request] = server.requests
    assert request.method == "PUT"
    assert request.url.path == "/api/Edit/Notices/1"
    assert json.loads(request.content) == {"title": "One", "content": "body", "isPinned": True}


@pytest.mark.anyio
async def test_pin_leaves_other_entries_untouched() -> None:
    first = Notice(1, "One", "a", False, T1)
    second = Notice(2, "Two", "b", True, T2)
    server = FakeNoticeServer([first, second])

    async with _controller(server, [first, second], []) as controller:
        await controller.pin(second)

        assert controller.notices == (first, replace(second, is_pinned=False))


@pytest.mark.anyio
async def test_pin_failure_releases_guard_and_keeps_cache() -> None:
    notice = Notice(1, "One", "body", False, T1)
    server = FakeNoticeServer([notice])
    server.fail_with = (500, {"title": "Storage unavailable", "status": 500})
    sink: List[Notification] = []

    async with _controller(server, [notice], sink) as controller:
        assert await controller.pin(notice) is False
        assert controller.disabled is False
        assert controller.notices == (notice,)

        server.fail_with = None
        assert await controller.pin(notice) is True

    assert sink[0].level == ERROR
    assert sink[0].message == "Storage unavailable"


@pytest.mark.anyio
async def test_pin_succeeds_when_server_returns_no_notice_body() -> None:
    notice = Notice(1, "One", "body", False, T1)
    sink: List[Notification] = []
    api = NoticeAPI(
        "http://testserver/api",
        "ctf_test-key",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="ok")),
    )

    async with NoticeCacheController(api, notify=sink.append, notices=[notice]) as controller:
        assert await controller.pin(notice) is True
        assert controller.notices == (replace(notice, is_pinned=True),)

    assert sink == []


@pytest.mark.anyio
async def test_second_pin_while_first_pending_is_ignored() -> None:
    notice = Notice(1, "One", "body", False, T1)
    release = anyio.Event()
    requests: List[httpx.Request] = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await release.wait()
        return httpx.Response(200, json=_payload(replace(notice, is_pinned=True)))

    api = NoticeAPI("http://testserver/api", "ctf_test-key", transport=httpx.MockTransport(slow_handler))
    controller = NoticeCacheController(api, notices=[notice])

    async with anyio.create_task_group() as tg:
        tg.start_soon(controller.pin, notice)
        while not requests:
            await anyio.sleep(0)

        assert controller.disabled is True
        assert await controller.pin(notice) is False
        assert controller.request_delete(notice) is None
        assert controller.notices == (notice,)

        release.set()

    assert len(requests) == 1
    assert controller.notices == (replace(notice, is_pinned=True),)
    assert controller.disabled is False
    await controller.close()


@pytest.mark.anyio
async def test_request_delete_returns_pending_prompt() -> None:
    notice = Notice(7, "Maintenance", "body", False, T1)
    server = FakeNoticeServer([notice])

    async with _controller(server, [notice], []) as controller:
        pending = controller.request_delete(notice)

    assert pending is not None
    assert pending.notice == notice
    assert '"Maintenance"' in pending.message
    assert server.requests == []


@pytest.mark.anyio
async def test_confirm_delete_removes_only_matching_entry() -> None:
    first = Notice(1, "One", "a", False, T1)
    second = Notice(2, "Two", "b", True, T2)
    third = Notice(3, "Three", "c", False, T2)
    server = FakeNoticeServer([first, second, third])
    sink: List[Notification] = []

    async with _controller(server, [first, second, third], sink) as controller:
        pending = controller.request_delete(second)
        assert await controller.confirm_delete(pending) is True

        assert controller.notices == (first, third)

    assert sink == [Notification(level=SUCCESS, title="", message="Notice deleted")]
    assert server.requests[-1].method == "DELETE"


@pytest.mark.anyio
async def test_confirm_delete_failure_keeps_collection() -> None:
    first = Notice(1, "One", "a", False, T1)
    second = Notice(2, "Two", "b", False, T2)
    server = FakeNoticeServer([first])
    sink: List[Notification] = []

    async with _controller(server, [first, second], sink) as controller:
        pending = controller.request_delete(second)
        assert await controller.confirm_delete(pending) is False

        assert controller.notices == (first, second)

    assert sink[0].level == ERROR
    assert sink[0].message == "Notice not found"


@pytest.mark.anyio
async def test_save_creates_then_edits() -> None:
    existing = Notice(1, "One", "a", False, T1)
    server = FakeNoticeServer([existing])
    sink: List[Notification] = []

    async with _controller(server, [existing], sink) as controller:
        created = await controller.save(Notice(None, "New", "fresh", False, T1))
        assert created.id == 2
        assert controller.notices == (created, existing)

        edited = await controller.save(replace(existing, title="Renamed"))
        assert controller.notices == (created, edited)
        assert edited.time == T2

    assert [n.message for n in sink] == ["Notice created", "Notice updated"]


@pytest.mark.anyio
async def test_save_failure_notifies_and_raises() -> None:
    server = FakeNoticeServer([])
    server.fail_with = (422, {"detail": [{"msg": "field required"}]})
    sink: List[Notification] = []

    async with _controller(server, [], sink) as controller:
        with pytest.raises(NoticeAPIError) as excinfo:
            await controller.save(Notice(None, "", "", False, T1))
        assert controller.notices == ()

    assert excinfo.value.status_code == 422
    assert sink[0].level == ERROR


def test_upsert_local_replaces_or_prepends() -> None:
    first = Notice(1, "One", "a", False, T1)
    second = Notice(2, "Two", "b", False, T1)
    api = NoticeAPI("http://testserver/api", "ctf_test-key", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    controller = NoticeCacheController(api, notices=[first, second])

    renamed = replace(second, title="Second")
    controller.upsert_local(renamed)
    assert controller.notices == (first, renamed)

    third = Notice(3, "Three", "c", False, T2)
    controller.upsert_local(third)
    assert controller.notices == (third, first, renamed)


def test_ordered_view_does_not_change_local_collection() -> None:
    older = Notice(1, "Old", "a", False, T1)
    pinned = Notice(2, "Pinned", "b", True, T1)
    newer = Notice(3, "New", "c", False, T2)
    api = NoticeAPI("http://testserver/api", "ctf_test-key", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    controller = NoticeCacheController(api, notices=[older, pinned, newer])

    assert controller.ordered() == (pinned, newer, older)
    assert controller.notices == (older, pinned, newer)
