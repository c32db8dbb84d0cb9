"""FastAPI application exposing module administration and viewer dashboards."""

from __future__ import annotations

import contextvars
import logging
import uuid
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.dashboard import Dashboard, build_dashboard
from ..services.editor import TreeEditor
from ..services.errors import (
    DeletionBlockedError,
    NotFoundError,
    PartialOrderSwapError,
    PortalError,
    ValidationError,
)
from ..services.events import emit_db_event, emit_structured_event
from ..services.hierarchy import ModuleForest
from ..services.ordering import OrderManager
from ..services.progress import ProgressStats
from ..services.storage import ModuleRecord, PortalRepository, WatchRecord


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "training_portal_request_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    request_id = _REQUEST_ID_VAR.get()
    return {"request_id": str(request_id)} if request_id else {}


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope.setdefault("state", {})["request_id"] = request_id
        token = _REQUEST_ID_VAR.set(request_id)
        try:
            await self.app(scope, receive, send)
        finally:
            _REQUEST_ID_VAR.reset(token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("training_portal.events"), {})


def _log_event(message: str, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        context=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


def _repository_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
    if event_type == "DB_QUERY":
        emit_db_event(
            message,
            correlation=_collect_correlation_context(),
            logger=EVENT_LOGGER,
            **kwargs,
        )
    else:
        emit_structured_event(event_type, message, logger=EVENT_LOGGER, **kwargs)


def _http_error(error: PortalError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, DeletionBlockedError):
        return HTTPException(
            status_code=409,
            detail={"error": type(error).__name__, "message": str(error)},
        )
    if isinstance(error, PartialOrderSwapError):
        return HTTPException(
            status_code=500,
            detail={
                "error": "PartialOrderSwapError",
                "message": str(error),
                "module_id": error.module_id,
                "target_id": error.target_id,
            },
        )
    return HTTPException(status_code=500, detail=str(error))


def _serialize_module(record: ModuleRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "category_id": record.category_id,
        "parent_id": record.parent_id,
        "title": record.title,
        "description": record.description,
        "order": record.order,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }


def _serialize_forest(forest: ModuleForest) -> List[Dict[str, Any]]:
    """Flatten ``forest`` in display order; clients rebuild nesting from ``parent_id``."""

    return [
        {
            **_serialize_module(view.record),
            "depth": view.depth,
            "child_ids": [child.id for child in forest.children(view.record.id)],
        }
        for view in forest.walk()
    ]


def _serialize_stats(stats: ProgressStats) -> Dict[str, Any]:
    return {
        "percentage": stats.percentage,
        "completed_count": stats.completed_count,
        "in_progress_count": stats.in_progress_count,
        "video_count": stats.video_count,
        "total_duration": stats.total_duration,
        "watched_duration": stats.watched_duration,
    }


def _serialize_watch_record(record: WatchRecord) -> Dict[str, Any]:
    return {
        "user_id": record.user_id,
        "video_id": record.video_id,
        "watched_duration": record.watched_duration,
        "completed": record.completed,
        "last_watched_at": record.last_watched_at.isoformat(),
    }


def _serialize_dashboard(dashboard: Dashboard) -> Dict[str, Any]:
    return {
        "user_id": dashboard.user.id,
        "overall": {
            **_serialize_stats(dashboard.overall.stats),
            "total_watch_time": dashboard.overall.total_watch_time,
        },
        "categories": [
            {
                "id": entry.category.id,
                "name": entry.category.name,
                "stats": _serialize_stats(entry.stats),
                "modules": [
                    {
                        "id": item.module.id,
                        "title": item.module.title,
                        "parent_id": item.module.parent_id,
                        "stats": _serialize_stats(item.stats),
                    }
                    for item in entry.modules
                ],
            }
            for entry in dashboard.categories
        ],
        "videos": [
            {
                "id": video.id,
                "title": video.title,
                "duration": video.duration,
                "kind": video.kind.value,
                "module_id": video.module_id,
                "category_ids": sorted(video.category_ids),
            }
            for video in dashboard.videos
        ],
        "continue_watching": [
            {
                "video_id": item.video.id,
                "title": item.video.title,
                "percentage": round(item.percentage, 2),
                "last_watched_at": item.last_watched_at.isoformat(),
            }
            for item in dashboard.continue_watching
        ],
    }


class ModuleCreatePayload(BaseModel):
    category_id: Optional[int] = None
    parent_id: Optional[int] = None
    title: str = Field(..., min_length=1)
    description: str = ""


class ModuleUpdatePayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class ModuleMovePayload(BaseModel):
    direction: Literal["up", "down"]


class ModuleSwapPayload(BaseModel):
    target_id: int


class WatchRecordPayload(BaseModel):
    user_id: int
    video_id: int
    watched_duration: float = Field(0.0, ge=0.0)
    completed: bool = False


def _normalize_root_path(value: Optional[str]) -> str:
    if value is None:
        return ""
    normalized = value.strip()
    if not normalized or normalized == "/":
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


def create_app(
    repository: PortalRepository,
    *,
    config: AppConfig,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Training Portal",
        description="Module administration and viewer progress",
        root_path=_normalize_root_path(root_path),
    )
    app.state.server = None
    app.state.config = config
    repository.configure_event_emitter(_repository_event_emitter)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    editor = TreeEditor(repository)
    order_manager = OrderManager(repository)

    @app.get("/api/categories")
    async def list_categories() -> Dict[str, Any]:
        categories = [
            {"id": record.id, "name": record.name, "description": record.description}
            for record in repository.iter_categories()
        ]
        _log_event("Listed categories", category_count=len(categories))
        return {"categories": categories}

    @app.get("/api/categories/{category_id}/modules")
    async def list_modules(category_id: int, search: Optional[str] = None) -> Dict[str, Any]:
        if repository.get_category(category_id) is None:
            raise HTTPException(status_code=404, detail="Category not found")
        forest = ModuleForest(repository.list_modules(category_id))
        if search is not None:
            matches = [_serialize_module(module) for module in forest.search(search)]
            return {"category_id": category_id, "search": search, "modules": matches}
        return {"category_id": category_id, "modules": _serialize_forest(forest)}

    @app.get("/api/modules/{module_id}")
    async def get_module(module_id: int) -> Dict[str, Any]:
        record = repository.get_module(module_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Module not found")
        forest = ModuleForest(repository.list_modules(record.category_id))
        return {
            "module": _serialize_module(record),
            "path": [
                {"id": module.id, "title": module.title} for module in forest.path(module_id)
            ],
        }

    @app.post("/api/modules", status_code=status.HTTP_201_CREATED)
    async def create_module(payload: ModuleCreatePayload) -> Dict[str, Any]:
        if (payload.category_id is None) == (payload.parent_id is None):
            raise HTTPException(
                status_code=400,
                detail="Provide either category_id for a root module or parent_id for a sub-module",
            )
        _log_event(
            "Creating module",
            category_id=payload.category_id,
            parent_id=payload.parent_id,
        )
        try:
            if payload.parent_id is not None:
                record = editor.create_child(payload.parent_id, payload.title, payload.description)
            else:
                record = editor.create_root(payload.category_id, payload.title, payload.description)
        except PortalError as error:
            raise _http_error(error) from error
        _log_event("Created module", module_id=record.id, order=record.order)
        return {"module": _serialize_module(record)}

    @app.put("/api/modules/{module_id}")
    async def update_module(module_id: int, payload: ModuleUpdatePayload) -> Dict[str, Any]:
        try:
            record = repository.get_module(module_id)
            if record is None:
                raise NotFoundError("module", module_id)
            if payload.title is not None:
                record = editor.rename(module_id, payload.title)
            if payload.description is not None:
                record = editor.describe(module_id, payload.description)
        except PortalError as error:
            raise _http_error(error) from error
        _log_event("Updated module", module_id=module_id)
        return {"module": _serialize_module(record)}

    @app.post("/api/modules/{module_id}/move")
    async def move_module(module_id: int, payload: ModuleMovePayload) -> Dict[str, Any]:
        _log_event("Moving module", module_id=module_id, direction=payload.direction)
        try:
            record = order_manager.move(module_id, payload.direction)
        except PartialOrderSwapError as error:
            LOGGER.error("Module reorder left partially applied: %s", error)
            raise _http_error(error) from error
        except PortalError as error:
            raise _http_error(error) from error
        return {"module": _serialize_module(record)}

    @app.post("/api/modules/{module_id}/swap")
    async def swap_module(module_id: int, payload: ModuleSwapPayload) -> Dict[str, Any]:
        _log_event("Swapping modules", module_id=module_id, target_id=payload.target_id)
        try:
            record = order_manager.swap_with(module_id, payload.target_id)
        except PartialOrderSwapError as error:
            LOGGER.error("Module swap left partially applied: %s", error)
            raise _http_error(error) from error
        except PortalError as error:
            raise _http_error(error) from error
        return {"module": _serialize_module(record)}

    @app.delete(
        "/api/modules/{module_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def delete_module(module_id: int) -> Response:
        _log_event("Deleting module", module_id=module_id)
        try:
            editor.delete(module_id)
        except PortalError as error:
            raise _http_error(error) from error
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/watch-records")
    async def record_watch(payload: WatchRecordPayload) -> Dict[str, Any]:
        if repository.get_user(payload.user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")
        if repository.get_video(payload.video_id) is None:
            raise HTTPException(status_code=404, detail="Video not found")
        record = repository.record_watch(
            payload.user_id,
            payload.video_id,
            payload.watched_duration,
            payload.completed,
        )
        return {"record": _serialize_watch_record(record)}

    @app.get("/api/users/{user_id}/dashboard")
    async def user_dashboard(user_id: int, module_id: Optional[int] = None) -> Dict[str, Any]:
        try:
            dashboard = build_dashboard(repository, user_id, module_filter=module_id)
        except PortalError as error:
            raise _http_error(error) from error
        _log_event(
            "Built dashboard",
            user_id=user_id,
            module_filter=module_id,
            video_count=len(dashboard.videos),
        )
        return _serialize_dashboard(dashboard)

    return app


__all__ = ["create_app"]
