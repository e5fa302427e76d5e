from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, HTTPException

from app.api.handlers.deps import ApiDeps
from app.api.handlers.notifications import collect_notifications_handler
from app.api.handlers.records import save_records_handler
from app.api.handlers.replies import (
    destination_error_handler,
    finalize_outcomes_handler,
    update_destination_ids_handler,
)
from app.api.handlers.sessions import create_session_handler, get_session_handler
from app.api.schemas import (
    BatchReportResponse,
    CreateSessionRequest,
    DestinationErrorRequest,
    DestinationIdsRequest,
    DispatchMetrics,
    ErrorResponse,
    HealthResponse,
    NotificationsResponse,
    OutcomesRequest,
    ReadyResponse,
    SaveRecordsRequest,
    SessionResponse,
)
from app.domain.errors import StoreUnavailableError
from app.domain.models import ObjectType, parse_object_type
from app.settings import DispatchRuntimeSettings, dispatch_runtime_settings_from_env
from app.workers.loop import DispatchLoop
from app.workers.runner import DispatchRuntimeState, run_dispatcher_until_stopped

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_app(
    role: str,
    run_id: str,
    dispatch_loop: DispatchLoop | None = None,
    dispatch_runtime_settings: DispatchRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    dispatch_state: DispatchRuntimeState | None = None
    dispatch_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal dispatch_task, dispatch_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if dispatch_loop is not None:
            settings = dispatch_runtime_settings or dispatch_runtime_settings_from_env()
            dispatch_state = DispatchRuntimeState()
            stop_event = asyncio.Event()
            dispatch_task = asyncio.create_task(
                run_dispatcher_until_stopped(
                    dispatch_loop=dispatch_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=dispatch_state,
                )
            )

        yield

        if stop_event is not None and dispatch_task is not None:
            stop_event.set()
            await dispatch_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="ledger-relay", version="0.1.0", lifespan=lifespan)

    def _require_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    def _object_type(value: str) -> ObjectType:
        try:
            return parse_object_type(value)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    def _unless_store_down(response: BatchReportResponse) -> BatchReportResponse:
        if response.applied or not response.failures:
            return response
        if all(failure.error_code == "store_unavailable" for failure in response.failures):
            raise HTTPException(status_code=503, detail=response.failures[0].detail)
        return response

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        connection_id = api_deps.engine.namespace.connection_id if api_deps is not None else None
        return HealthResponse(status="ok", role=role, connection_id=connection_id)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        dispatch_loop_enabled = dispatch_loop is not None
        dispatch_loop_ready = True
        metrics = DispatchMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            rounds_with_work_total=0,
            idle_ticks_total=0,
            errors_total=0,
        )
        if dispatch_loop_enabled:
            dispatch_loop_ready = (
                dispatch_state is not None
                and dispatch_state.started
                and dispatch_task is not None
                and not dispatch_task.done()
            )
            if dispatch_state is not None:
                metrics = DispatchMetrics(
                    started=dispatch_state.started,
                    stopped=dispatch_state.stopped,
                    ticks_total=dispatch_state.ticks_total,
                    rounds_with_work_total=dispatch_state.rounds_with_work_total,
                    idle_ticks_total=dispatch_state.idle_ticks_total,
                    errors_total=dispatch_state.errors_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            dispatch_loop_enabled=dispatch_loop_enabled,
            dispatch_loop_ready=dispatch_loop_ready,
            dispatch_metrics=metrics,
        )

    @app.post(
        "/records/{object_type}",
        response_model=BatchReportResponse,
        responses=ERROR_RESPONSES,
        tags=["Records"],
    )
    async def save_records(object_type: str, request: SaveRecordsRequest) -> BatchReportResponse:
        deps = _require_deps()
        kind = _object_type(object_type)
        try:
            response = await save_records_handler(object_type=kind, records=request.records, api_deps=deps)
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return _unless_store_down(response)

    @app.post(
        "/replies/destination-ids",
        response_model=BatchReportResponse,
        responses=ERROR_RESPONSES,
        tags=["Replies"],
    )
    async def update_destination_ids(request: DestinationIdsRequest) -> BatchReportResponse:
        deps = _require_deps()
        for item in request.updates:
            _object_type(item.object_type)
        response = await update_destination_ids_handler(updates=request.updates, api_deps=deps)
        return _unless_store_down(response)

    @app.post(
        "/replies/outcomes",
        response_model=BatchReportResponse,
        responses=ERROR_RESPONSES,
        tags=["Replies"],
    )
    async def finalize_outcomes(request: OutcomesRequest) -> BatchReportResponse:
        deps = _require_deps()
        for item in [*request.processed, *request.failed]:
            _object_type(item.object_type)
        response = await finalize_outcomes_handler(
            processed=request.processed,
            failed=request.failed,
            api_deps=deps,
        )
        return _unless_store_down(response)

    @app.post(
        "/replies/errors",
        response_model=BatchReportResponse,
        responses=ERROR_RESPONSES,
        tags=["Replies"],
    )
    async def destination_errors(request: DestinationErrorRequest) -> BatchReportResponse:
        deps = _require_deps()
        try:
            return await destination_error_handler(
                object_type=_object_type(request.object_type),
                session_id=request.session_id,
                error_context=request.error_context,
                api_deps=deps,
            )
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.get(
        "/notifications/{object_type}",
        response_model=NotificationsResponse,
        responses=ERROR_RESPONSES,
        tags=["Notifications"],
    )
    async def collect_notifications(object_type: str) -> NotificationsResponse:
        deps = _require_deps()
        try:
            return await collect_notifications_handler(object_type=_object_type(object_type), api_deps=deps)
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.post(
        "/sessions",
        response_model=SessionResponse,
        responses=ERROR_RESPONSES,
        tags=["Sessions"],
    )
    async def create_session(request: CreateSessionRequest) -> SessionResponse:
        deps = _require_deps()
        try:
            return await create_session_handler(record=request.record, tag=request.tag, api_deps=deps)
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionResponse,
        responses=ERROR_RESPONSES,
        tags=["Sessions"],
    )
    async def get_session(session_id: str) -> SessionResponse:
        deps = _require_deps()
        try:
            session = await get_session_handler(session_id=session_id, api_deps=deps)
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if session is None:
            raise HTTPException(status_code=404, detail="session not found")
        return session

    return app
