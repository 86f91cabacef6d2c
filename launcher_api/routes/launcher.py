"""
Launcher API routes: the operations the launcher page drives.

Endpoints are plain `def` so FastAPI runs them on its worker thread pool; the
git/npm/node calls they make never block the event loop.
"""
from fastapi import APIRouter, HTTPException, Query, Request

from launcher_api.models import (
    EventModel,
    EventsResponse,
    FinalizeStashRequest,
    ServerStatusResponse,
    StartRequest,
    StartResponse,
    SuccessResponse,
    SyncResponse,
    UpdateRequest,
    UpdateResponse,
)
from launcher_backend.errors import (
    ConfigurationError,
    ConflictError,
    HealthTimeoutError,
    InstallFailedError,
    LaunchError,
    LauncherError,
    StartInProgressError,
    SubprocessFailure,
)
from launcher_backend.service import LauncherService

router = APIRouter(prefix="/api", tags=["launcher"])


def _service(request: Request) -> LauncherService:
    return request.app.state.service


def _http_error(e: LauncherError) -> HTTPException:
    if isinstance(e, ConfigurationError):
        status = 400
    elif isinstance(e, (InstallFailedError, StartInProgressError, ConflictError)):
        status = 409
    elif isinstance(e, HealthTimeoutError):
        status = 504
    elif isinstance(e, (LaunchError, SubprocessFailure)):
        status = 502
    else:
        status = 500
    return HTTPException(status_code=status, detail=str(e))


@router.post("/update", response_model=UpdateResponse)
def update_vendor(req: UpdateRequest, request: Request):
    try:
        outcome = _service(request).update_vendor(req.attempt_overwrite)
    except LauncherError as e:
        raise _http_error(e)
    return UpdateResponse(**outcome.to_dict())


@router.post("/stash/finalize", response_model=SuccessResponse)
def finalize_stash(req: FinalizeStashRequest, request: Request):
    try:
        _service(request).finalize_stash(req.revert)
    except LauncherError as e:
        raise _http_error(e)
    return SuccessResponse()


@router.post("/characters/sync", response_model=SyncResponse)
def run_character_sync(request: Request):
    result = _service(request).run_character_sync()
    return SyncResponse(success=result.success, message=result.message)


@router.post("/server/start", response_model=StartResponse)
def start_server(req: StartRequest, request: Request):
    try:
        url = _service(request).start_server(force=req.force)
    except LauncherError as e:
        raise _http_error(e)
    return StartResponse(url=url)


@router.post("/server/restart", response_model=StartResponse)
def restart_server(req: StartRequest, request: Request):
    try:
        url = _service(request).restart_server(force=req.force)
    except LauncherError as e:
        raise _http_error(e)
    return StartResponse(url=url)


@router.post("/server/shutdown", response_model=SuccessResponse)
def shutdown_server(request: Request):
    _service(request).supervisor.shutdown()
    return SuccessResponse()


@router.get("/server/status", response_model=ServerStatusResponse)
def server_status(request: Request):
    return ServerStatusResponse(**_service(request).server_status())


@router.get("/events", response_model=EventsResponse)
def list_events(request: Request, after: int = Query(0, ge=0, description="Last sequence number seen")):
    service = _service(request)
    events = [EventModel(**e.to_dict()) for e in service.events_since(after)]
    last = events[-1].seq if events else after
    return EventsResponse(events=events, last=last)
