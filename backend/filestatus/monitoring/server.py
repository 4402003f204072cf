"""
Dashboard API endpoints.

Status listing plus the operator actions of the dashboard: retry, rename,
delete, clear, CSV/JSON transfer and path diagnostics. File actions only
touch the filesystem (and delete records); status changes are left to the
reconciliation engine, which is nudged with a resync after every action.

Intended for trusted LAN access. No authentication is implemented.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request
from fastapi.responses import Response

from ..actions import commands
from ..actions.commands import ActionResult, ExpandResult, PathTestResult, WriteAccessResult
from ..actions.errors import (
    ActionError,
    FileAlreadyExistsError,
    FileNotFoundInLocationError,
    NotConfiguredError,
    PermissionDeniedError,
)
from ..watchfolders.models import FileStatus, TrackerConfig
from .errors import StatusNotFoundError
from .models import (
    ClearResponse,
    FileListResponse,
    FileStatusView,
    HealthResponse,
    ImportResponse,
    PathTestRequest,
    RenameRequest,
    ResyncResponse,
    SettingsImportResponse,
)
from .queries import get_status, keep_stored_passwords, list_statuses, public_config

logger = logging.getLogger(__name__)


router = APIRouter(tags=["dashboard"])


def _action_http_error(e: ActionError) -> HTTPException:
    if isinstance(e, FileNotFoundInLocationError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, FileAlreadyExistsError):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=403, detail=e.message)
    if isinstance(e, NotConfiguredError):
        return HTTPException(status_code=409, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)


def _after_change(request: Request) -> None:
    """Let the service pick up new files or settings without waiting for a poll."""
    service = getattr(request.app.state, "service", None)
    if service is not None:
        service.request_resync()


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request):
    """
    Health check endpoint.

    Reports the background service state alongside the plain status.
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        return HealthResponse(tracked_files=request.app.state.store.count_files())
    return service.health()


# Status records

@router.get("/files", response_model=FileListResponse)
def list_files(
    request: Request,
    status: Optional[FileStatus] = None,
    limit: Optional[int] = Query(None, ge=1),
):
    """
    List status records, newest first.

    Args:
        status: Only records with this status
        limit: Maximum number of records returned
    """
    return list_statuses(request.app.state.store, status=status, limit=limit)


@router.delete("/files", response_model=ClearResponse)
def clear_files(request: Request):
    """Delete every status record. Files on disk are untouched."""
    return ClearResponse(deleted=commands.clear_all_statuses(request.app.state.store))


@router.get("/files/export")
def export_files(request: Request):
    """All status records as CSV."""
    return _csv_response(commands.export_statuses_csv(request.app.state.store), "file-statuses.csv")


@router.post("/files/import", response_model=ImportResponse)
async def import_files(request: Request):
    """
    Upsert status records from a CSV request body.

    Raises:
        400: If the CSV is malformed or misses required columns
    """
    body = await request.body()
    try:
        content = body.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")
    try:
        imported = commands.import_statuses_csv(request.app.state.store, content)
    except ActionError as e:
        raise _action_http_error(e)
    return ImportResponse(imported=imported)


@router.get("/files/{name}", response_model=FileStatusView)
def get_file(name: str, request: Request):
    """
    Raises:
        404: If no record exists for the name
    """
    try:
        return get_status(request.app.state.store, name)
    except StatusNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/files/{name}/retry", response_model=ActionResult)
def retry_file(name: str, request: Request):
    """Move a failed file back to the first import location."""
    try:
        result = commands.retry_file(request.app.state.store, name)
    except ActionError as e:
        raise _action_http_error(e)
    _after_change(request)
    return result


@router.post("/files/{name}/rename", response_model=ActionResult)
def rename_file(name: str, body: RenameRequest, request: Request):
    """Move a failed file back to the first import location under a new name."""
    try:
        result = commands.rename_file(request.app.state.store, name, body.new_name)
    except ActionError as e:
        raise _action_http_error(e)
    _after_change(request)
    return result


@router.post("/files/{name}/expand", response_model=ExpandResult)
def expand_file(name: str, request: Request):
    """Split a multi-prefix failed file into one copy per prefix in import."""
    try:
        result = commands.expand_file_prefixes(request.app.state.store, name)
    except ActionError as e:
        raise _action_http_error(e)
    _after_change(request)
    return result


@router.delete("/files/{name}", response_model=ActionResult)
def delete_file(name: str, request: Request):
    """Delete a file from the failed location together with its record."""
    try:
        result = commands.delete_failed_file(request.app.state.store, name)
    except ActionError as e:
        raise _action_http_error(e)
    return result


# Reports

@router.get("/reports/statistics")
def statistics_report(request: Request):
    """Published counts per day, week and month followed by the raw published rows."""
    return _csv_response(
        commands.generate_statistics_report(request.app.state.store),
        "statistics-report.csv",
    )


# Settings

@router.get("/settings", response_model=TrackerConfig)
def get_settings(request: Request):
    """Tracker configuration. Network share passwords are never returned."""
    return public_config(request.app.state.store.get_config())


@router.put("/settings", response_model=TrackerConfig)
def update_settings(config: TrackerConfig, request: Request):
    """
    Replace the tracker configuration. Takes effect at the next engine checkpoint.

    A location sent without a password keeps the stored one.
    """
    store = request.app.state.store
    store.update_config(keep_stored_passwords(config, store.get_config()))
    logger.info("Tracker settings updated")
    service = getattr(request.app.state, "service", None)
    if service is not None:
        service.reload_settings()
    return public_config(store.get_config())


@router.get("/settings/export")
def export_settings(request: Request):
    return Response(
        content=commands.export_settings(request.app.state.store),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="filestatus-settings.json"'},
    )


@router.post("/settings/import", response_model=SettingsImportResponse)
def import_settings(request: Request, settings: Dict[str, Any] = Body(...)):
    try:
        applied = commands.import_settings(request.app.state.store, settings)
    except ActionError as e:
        raise _action_http_error(e)
    service = getattr(request.app.state, "service", None)
    if service is not None:
        service.reload_settings()
    return SettingsImportResponse(applied=applied)


@router.get("/settings/write-access", response_model=WriteAccessResult)
def write_access(request: Request):
    """Probe write access to the first import location and the failed location."""
    return commands.check_write_access(request.app.state.store)


@router.post("/settings/test-path", response_model=PathTestResult)
def check_path(body: PathTestRequest):
    return commands.probe_path(body.path)


# Control

@router.post("/control/resync", response_model=ResyncResponse)
def request_resync(request: Request):
    """
    Queue an immediate reconciliation pass.

    Raises:
        503: If no background service is attached
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Tracker service is not running")
    return ResyncResponse(queued=service.request_resync())
