"""FastAPI application exposing the administration and notice endpoints."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .admin import AdminError, AdminService, NoticeInput, UserPatch
from .config import AdminSettings, load_settings
from .database import Database
from .models import ALL_LEVELS, FileRecord, LogEntry, Notice, Role, Team, User
from .security import AdminAuth

logger = logging.getLogger("ctfadmin.api")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BasicUserInfo(_CamelModel):
    id: str
    username: str = Field(alias="userName")
    real_name: str
    email: Optional[str]
    phone: Optional[str]
    role: Role


class ClientUserInfo(BasicUserInfo):
    bio: str
    registered_at: datetime


class UpdateUserInfoRequest(_CamelModel):
    username: Optional[str] = Field(default=None, alias="userName", min_length=1, max_length=64)
    email: Optional[str] = Field(default=None, max_length=254)
    bio: Optional[str] = Field(default=None, max_length=512)
    phone: Optional[str] = Field(default=None, max_length=32)
    real_name: Optional[str] = Field(default=None, max_length=64)
    role: Optional[Role] = None


class TeamInfo(_CamelModel):
    id: int
    name: str
    bio: Optional[str]
    locked: bool
    captain_id: Optional[str]
    member_count: int
    created_at: datetime


class LogMessage(_CamelModel):
    id: int
    time: datetime
    level: str
    message: str
    actor: Optional[str]
    ip: Optional[str]
    status: Optional[str]


class LocalFile(_CamelModel):
    id: int
    name: str
    file_size: int
    hash: str
    reference_count: int
    uploaded_at: datetime


class NoticeModel(_CamelModel):
    id: int
    title: str
    content: str
    is_pinned: bool
    time: datetime


class NoticeRequest(_CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    is_pinned: bool = False


def user_to_basic(user: User) -> BasicUserInfo:
    return BasicUserInfo(
        id=user.id,
        username=user.username,
        real_name=user.real_name,
        email=user.email,
        phone=user.phone,
        role=user.role,
    )


def user_to_client(user: User) -> ClientUserInfo:
    return ClientUserInfo(
        id=user.id,
        username=user.username,
        real_name=user.real_name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        bio=user.bio,
        registered_at=user.registered_at,
    )


def team_to_response(team: Team) -> TeamInfo:
    return TeamInfo(
        id=team.id,
        name=team.name,
        bio=team.bio,
        locked=team.locked,
        captain_id=team.captain_id,
        member_count=len(team.members),
        created_at=team.created_at,
    )


def log_to_response(entry: LogEntry) -> LogMessage:
    return LogMessage(
        id=entry.id,
        time=entry.time,
        level=entry.level.value,
        message=entry.message,
        actor=entry.actor,
        ip=entry.ip,
        status=entry.status,
    )


def file_to_response(record: FileRecord) -> LocalFile:
    return LocalFile(
        id=record.id,
        name=record.name,
        file_size=record.size,
        hash=record.hash,
        reference_count=record.reference_count,
        uploaded_at=record.uploaded_at,
    )


def notice_to_response(notice: Notice) -> NoticeModel:
    return NoticeModel(
        id=notice.id,
        title=notice.title,
        content=notice.content,
        is_pinned=notice.is_pinned,
        time=notice.time,
    )


def _error_body(title: str, message: str, status_code: int) -> Dict[str, object]:
    return {"title": title, "message": message, "status": status_code}


def create_app(
    *,
    database: Database | None = None,
    settings: AdminSettings | None = None,
    auth: AdminAuth | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if auth is None:
        auth = AdminAuth(database)

    service = AdminService(database, settings)

    app = FastAPI(
        title="CTF Administration API",
        description="Privileged listing and mutation endpoints for platform administrators",
        version="1.0.0",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.service = service

    def get_service() -> AdminService:
        return service

    async def get_current_user(request: Request) -> User:
        return await auth(request)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    admin_router = APIRouter(prefix="/Admin")

    @admin_router.get("/Users", response_model=List[BasicUserInfo])
    async def list_users(
        count: int = Query(default=settings.default_user_page),
        skip: int = Query(default=0),
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> List[BasicUserInfo]:
        return [user_to_basic(user) for user in admin.list_users(skip, count)]

    @admin_router.get("/Users/{user_id}", response_model=ClientUserInfo)
    async def read_user(
        user_id: str,
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> ClientUserInfo:
        return user_to_client(admin.get_user(user_id))

    @admin_router.put("/Users/{user_id}")
    async def update_user(
        user_id: str,
        payload: UpdateUserInfoRequest,
        current_user: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> Response:
        patch = UserPatch.from_mapping(payload.model_dump(exclude_unset=True))
        admin.patch_user(user_id, patch)
        logger.info("Administrator %s patched user %s", current_user.id, user_id)
        return Response(status_code=status.HTTP_200_OK)

    @admin_router.delete("/Users/{user_id}")
    async def delete_user(
        user_id: str,
        current_user: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> Response:
        admin.delete_user(user_id, current_user.id)
        return Response(status_code=status.HTTP_200_OK)

    @admin_router.get("/Teams", response_model=List[TeamInfo])
    async def list_teams(
        count: int = Query(default=settings.default_team_page),
        skip: int = Query(default=0),
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> List[TeamInfo]:
        return [team_to_response(team) for team in admin.list_teams(skip, count)]

    @admin_router.get("/Logs", response_model=List[LogMessage])
    @admin_router.get("/Logs/{level}", response_model=List[LogMessage])
    async def list_logs(
        level: str = ALL_LEVELS,
        count: int = Query(default=settings.default_log_page),
        skip: int = Query(default=0),
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> List[LogMessage]:
        return [log_to_response(entry) for entry in admin.list_logs(skip, count, level)]

    @admin_router.get("/Files", response_model=List[LocalFile])
    async def list_files(
        count: int = Query(default=settings.default_file_page),
        skip: int = Query(default=0),
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> List[LocalFile]:
        return [file_to_response(record) for record in admin.list_files(skip, count)]

    edit_router = APIRouter(prefix="/Edit")

    @edit_router.get("/Notices", response_model=List[NoticeModel])
    async def list_notices(
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> List[NoticeModel]:
        return [notice_to_response(notice) for notice in admin.list_notices()]

    @edit_router.post("/Notices", response_model=NoticeModel)
    async def create_notice(
        payload: NoticeRequest,
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> NoticeModel:
        notice = admin.create_notice(
            NoticeInput(title=payload.title, content=payload.content, is_pinned=payload.is_pinned)
        )
        return notice_to_response(notice)

    @edit_router.put("/Notices/{notice_id}", response_model=NoticeModel)
    async def update_notice(
        notice_id: int,
        payload: NoticeRequest,
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> NoticeModel:
        notice = admin.update_notice(
            notice_id,
            NoticeInput(title=payload.title, content=payload.content, is_pinned=payload.is_pinned),
        )
        return notice_to_response(notice)

    @edit_router.delete("/Notices/{notice_id}")
    async def delete_notice(
        notice_id: int,
        _: User = Depends(get_current_user),
        admin: AdminService = Depends(get_service),
    ) -> Response:
        admin.delete_notice(notice_id)
        return Response(status_code=status.HTTP_200_OK)

    app.include_router(admin_router)
    app.include_router(edit_router)

    @app.exception_handler(AdminError)
    async def handle_admin_error(_: object, exc: AdminError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.title, str(exc), exc.status_code),
        )

    @app.exception_handler(sqlite3.Error)
    async def handle_storage_error(_: object, exc: sqlite3.Error):
        logger.exception("Storage failure while handling request", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                "Storage unavailable",
                "The request could not be completed; try again later",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ),
        )

    return app


__all__ = ["create_app"]
