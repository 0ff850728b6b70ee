"""Async HTTP client for the notice editing endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

import httpx

from .models import Notice


class NoticeAPIError(Exception):
    """Raised when the service rejects a notice request or cannot be reached."""

    def __init__(self, title: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(title)
        self.title = title
        self.status_code = status_code


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("API base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_title(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("title", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def _parse_time(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def notice_from_payload(data: object) -> Notice:
    if not isinstance(data, dict):
        raise NoticeAPIError("Notice service returned an unexpected payload")
    try:
        return Notice(
            id=int(data["id"]),
            title=str(data["title"]),
            content=str(data["content"]),
            is_pinned=bool(data["isPinned"]),
            time=_parse_time(str(data["time"])),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise NoticeAPIError("Notice service response was missing required fields") from exc


def notice_to_payload(notice: Notice) -> Dict[str, object]:
    return {"title": notice.title, "content": notice.content, "isPinned": notice.is_pinned}


class NoticeAPI:
    """Talk to ``/Edit/Notices`` on behalf of the notice cache controller."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cleaned_key = (api_key or "").strip()
        if not cleaned_key:
            raise ValueError("API key must not be empty")
        self._client = httpx.AsyncClient(
            base_url=_normalize_base_url(base_url),
            headers={"Authorization": f"Bearer {cleaned_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, json: object | None = None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.RequestError as exc:
            raise NoticeAPIError(f"Failed to contact notice service: {exc}") from exc

        if response.status_code >= 400:
            default = f"Notice service request failed with status {response.status_code}"
            try:
                parsed: object = response.json()
            except ValueError:
                parsed = response.text
            raise NoticeAPIError(
                _extract_error_title(parsed, default),
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response) -> object:
        try:
            return response.json()
        except ValueError as exc:
            raise NoticeAPIError("Notice service returned an invalid response") from exc

    async def list_notices(self) -> List[Notice]:
        payload = self._json(await self._request("GET", "/Edit/Notices"))
        if not isinstance(payload, list):
            raise NoticeAPIError("Notice service returned an unexpected payload")
        return [notice_from_payload(item) for item in payload]

    async def create_notice(self, notice: Notice) -> Notice:
        response = await self._request("POST", "/Edit/Notices", json=notice_to_payload(notice))
        return notice_from_payload(self._json(response))

    async def update_notice(self, notice_id: int, notice: Notice) -> Notice:
        response = await self._request("PUT", f"/Edit/Notices/{notice_id}", json=notice_to_payload(notice))
        return notice_from_payload(self._json(response))

    async def set_pinned(self, notice_id: int, notice: Notice) -> None:
        """Send the toggled notice; only the response status is checked."""

        await self._request("PUT", f"/Edit/Notices/{notice_id}", json=notice_to_payload(notice))

    async def delete_notice(self, notice_id: int) -> None:
        await self._request("DELETE", f"/Edit/Notices/{notice_id}")


__all__ = ["NoticeAPI", "NoticeAPIError", "notice_from_payload", "notice_to_payload"]
