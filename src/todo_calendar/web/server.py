"""
FastAPI server for the todo calendar.

Exposes the cached calendar as JSON for browser renderers and routes every
mutation through the optimistic coordinator, so the HTTP surface behaves
exactly like the CLI.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from .. import __version__
from ..config import ConfigModel, get_config
from ..errors import (
    AuthenticationError,
    CalendarError,
    NotFoundError,
    RemoteError,
    ValidationError,
)
from ..session import CalendarSession, build_session


logger = logging.getLogger(__name__)


class TaskDraftRequest(BaseModel):
    """A task inside a list create or edit request."""
    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=500)
    completed: bool = False


class ListCreateRequest(BaseModel):
    """Request model for creating a list."""
    title: str = Field(..., min_length=1, max_length=200)
    date: str
    tasks: List[TaskDraftRequest] = Field(default_factory=list)


class ListUpdateRequest(BaseModel):
    """Request model for changing a list's title and/or date."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[str] = None


class ListEditRequest(ListUpdateRequest):
    """Request model for editing a list together with its tasks."""
    tasks: Optional[List[TaskDraftRequest]] = None


class DuplicateRequest(BaseModel):
    date: str


class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    completed: bool = False


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    completed: Optional[bool] = None


class ToggleRequest(BaseModel):
    completed: Optional[bool] = None


class CredentialsRequest(BaseModel):
    email: str
    password: str


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = "healthy"
    version: str
    backend: str
    signed_in: bool
    realtime: bool
    cached_lists: int


def error_status(exc: CalendarError) -> int:
    """HTTP status for a calendar error."""
    if isinstance(exc, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, RemoteError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def get_session(request: Request) -> CalendarSession:
    return request.app.state.session


def create_app(session: Optional[CalendarSession] = None,
               config: Optional[ConfigModel] = None) -> FastAPI:
    """Build the API around a session.

    Args:
        session: Session to serve; built from ``config`` when omitted
        config: Configuration; the global one when omitted
    """
    config = config or get_config()
    if session is None:
        session = build_session(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting todo calendar API")
        try:
            await session.start()
        except CalendarError as e:
            logger.warning(f"Initial load failed: {e}")
        yield
        logger.info("Shutting down todo calendar API")
        await session.close()

    app = FastAPI(
        title="Todo Calendar API",
        description="Calendar of dated to-do lists with optimistic updates",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session = session
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8080",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8080",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CalendarError)
    async def calendar_error_handler(request: Request, exc: CalendarError):
        code = error_status(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "type": type(exc).__name__},
        )

    register_routes(app)
    return app


def register_routes(app: FastAPI):
    """Attach the API routes to an app."""

    @app.get("/api/health", response_model=HealthResponse)
    async def health(session: CalendarSession = Depends(get_session)):
        return HealthResponse(
            version=__version__,
            backend=app.state.config.backend,
            signed_in=session.user is not None,
            realtime=session.listener is not None and session.listener.running,
            cached_lists=len(session.store),
        )

    # Auth

    @app.post("/api/auth/login")
    async def login(body: CredentialsRequest, session: CalendarSession = Depends(get_session)):
        user = await session.sign_in(body.email, body.password)
        return user.to_dict()

    @app.post("/api/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
    async def logout(session: CalendarSession = Depends(get_session)):
        await session.sign_out()

    @app.get("/api/auth/me")
    async def me(session: CalendarSession = Depends(get_session)):
        return session.identity.require_user().to_dict()

    # Reads

    @app.get("/api/lists")
    async def get_lists(start: Optional[str] = None, end: Optional[str] = None,
                        session: CalendarSession = Depends(get_session)) -> List[Dict[str, Any]]:
        """Cached lists, optionally restricted to ``[start, end]``."""
        if start and end:
            lists = session.store.lists_in_range(start, end)
        else:
            lists = session.store.lists
        return [task_list.to_dict() for task_list in lists]

    @app.get("/api/months/{month}")
    async def get_month(month: str, session: CalendarSession = Depends(get_session)):
        """Load a month and return its grid with the lists of each day."""
        await session.show_month(month)
        weeks = []
        for week in session.month_grid():
            weeks.append([
                {"date": day, "lists": [l.to_dict() for l in session.lists_for_day(day)]}
                if day else None
                for day in week
            ])
        return {
            "month": session.visible_month,
            "first_day_of_week": session.first_day_of_week,
            "weeks": weeks,
        }

    @app.get("/api/days/{day}")
    async def get_day(day: str, session: CalendarSession = Depends(get_session)):
        selected = session.select_date(day)
        return {
            "date": selected,
            "lists": [l.to_dict() for l in session.lists_for_day(selected)],
        }

    # List mutations

    @app.post("/api/lists", status_code=status.HTTP_201_CREATED)
    async def create_list(body: ListCreateRequest, session: CalendarSession = Depends(get_session)):
        created = await session.coordinator.create_list(
            body.title, body.date, [t.model_dump() for t in body.tasks])
        return created.to_dict()

    @app.patch("/api/lists/{list_id}")
    async def update_list(list_id: str, body: ListUpdateRequest,
                          session: CalendarSession = Depends(get_session)):
        updated = await session.coordinator.update_list(list_id, title=body.title, date=body.date)
        return updated.to_dict()

    @app.put("/api/lists/{list_id}")
    async def edit_list(list_id: str, body: ListEditRequest,
                        session: CalendarSession = Depends(get_session)):
        tasks = [t.model_dump() for t in body.tasks] if body.tasks is not None else None
        edited = await session.coordinator.edit_list(
            list_id, title=body.title, date=body.date, tasks=tasks)
        return edited.to_dict() if edited else None

    @app.delete("/api/lists/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_list(list_id: str, session: CalendarSession = Depends(get_session)):
        await session.coordinator.delete_list(list_id)

    @app.post("/api/lists/{list_id}/duplicate", status_code=status.HTTP_201_CREATED)
    async def duplicate_list(list_id: str, body: DuplicateRequest,
                             session: CalendarSession = Depends(get_session)):
        duplicate = await session.coordinator.duplicate_list(list_id, body.date)
        return duplicate.to_dict()

    # Task mutations

    @app.post("/api/lists/{list_id}/tasks", status_code=status.HTTP_201_CREATED)
    async def create_task(list_id: str, body: TaskCreateRequest,
                          session: CalendarSession = Depends(get_session)):
        task = await session.coordinator.create_task(list_id, body.title, completed=body.completed)
        return task.to_dict()

    @app.patch("/api/lists/{list_id}/tasks/{task_id}")
    async def update_task(list_id: str, task_id: str, body: TaskUpdateRequest,
                          session: CalendarSession = Depends(get_session)):
        task = await session.coordinator.update_task(
            list_id, task_id, title=body.title, completed=body.completed)
        return task.to_dict()

    @app.post("/api/lists/{list_id}/tasks/{task_id}/toggle")
    async def toggle_task(list_id: str, task_id: str, body: Optional[ToggleRequest] = None,
                          session: CalendarSession = Depends(get_session)):
        completed = body.completed if body is not None else None
        task = await session.coordinator.toggle_task(list_id, task_id, completed=completed)
        return task.to_dict()

    @app.delete("/api/lists/{list_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_task(list_id: str, task_id: str,
                          session: CalendarSession = Depends(get_session)):
        await session.coordinator.delete_task(list_id, task_id)


def start_server(config: Optional[ConfigModel] = None, host: Optional[str] = None,
                 port: Optional[int] = None):
    """Run the API with uvicorn until interrupted.

    Raises:
        ConfigError: If the configured backend cannot be built
    """
    config = config or get_config()
    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or config.web_host,
        port=port or config.web_port,
        log_level=config.log_level.lower(),
    )
