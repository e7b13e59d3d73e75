import asyncio
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from .. import matrix
from ..auth import require_operator_token
from ..errors import DecodeError, NotFoundError, StorageIOError, ValidationError
from ..metrics import TURBINE_ONLINE
from ..schemas import AlertRecord, CaptureFile, EvolutionPoint, LiveStatus, MatrixView, RemoteConfig
from ..state import CloudState
from ..storage import validate_capture_name
from .deps import get_cloud_state

router = APIRouter()
logger = structlog.get_logger(__name__)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid filename")
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="file not found")
    if isinstance(exc, DecodeError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="could not decode capture")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="storage error")


async def _load_grid(state: CloudState, filename: str):
    try:
        data = await asyncio.to_thread(state.captures.read, filename)
        return await asyncio.to_thread(matrix.analyze, data)
    except (NotFoundError, DecodeError, StorageIOError, ValidationError) as exc:
        logger.warning("capture_analysis_failed", name=filename, error=type(exc).__name__)
        raise _http_error(exc) from exc


@router.get("/live", response_model=LiveStatus)
async def get_live(state: CloudState = Depends(get_cloud_state)) -> LiveStatus:
    live = state.store.get_status()
    TURBINE_ONLINE.set(1 if live.is_online else 0)
    return live


@router.get("/config", response_model=RemoteConfig)
async def get_config(state: CloudState = Depends(get_cloud_state)) -> RemoteConfig:
    return state.store.get_config()


@router.post("/config", response_model=RemoteConfig, dependencies=[Depends(require_operator_token)])
async def set_config(config: RemoteConfig, state: CloudState = Depends(get_cloud_state)) -> RemoteConfig:
    """Replace the whole configuration; robots pick it up on their next heartbeat."""

    state.store.set_config(config)
    logger.info("config_updated", **config.model_dump(exclude={"api_key"}))
    return state.store.get_config()


@router.get("/alerts", response_model=List[AlertRecord])
async def list_alerts(state: CloudState = Depends(get_cloud_state)) -> List[AlertRecord]:
    """Alert history, newest first."""

    return state.alerts.list()


@router.get("/files", response_model=List[CaptureFile])
async def list_files(state: CloudState = Depends(get_cloud_state)) -> List[CaptureFile]:
    try:
        captures = await asyncio.to_thread(state.captures.list)
    except StorageIOError as exc:
        raise _http_error(exc) from exc
    return [
        CaptureFile(
            name=c.name,
            size_kb=round(c.size / 1024, 2),
            date=c.modified_time.strftime("%Y-%m-%d %H:%M:%S"),
            type=c.name.rsplit(".", 1)[-1].upper(),
        )
        for c in captures
    ]


@router.get("/download/{filename}")
async def download_file(filename: str, state: CloudState = Depends(get_cloud_state)):
    try:
        path = state.captures.path_for(filename)
    except ValidationError as exc:
        raise _http_error(exc) from exc
    if not path.is_file():
        raise _http_error(NotFoundError(filename))
    return FileResponse(path, media_type="application/octet-stream", filename=filename)


@router.get("/matrix/{filename}/{frame_index}", response_model=MatrixView)
async def get_matrix(filename: str, frame_index: int, state: CloudState = Depends(get_cloud_state)) -> MatrixView:
    """Heat map of one frame; pixels are row-major with ``width`` values per row."""

    try:
        validate_capture_name(filename)
    except ValidationError as exc:
        raise _http_error(exc) from exc
    if frame_index < 0 or frame_index >= matrix.ThermalGrid.frame_count:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="only frame 0 is available")

    grid, reduction = await _load_grid(state, filename)
    height, width = grid.dimensions()
    return MatrixView(
        width=width,
        height=height,
        min_temp=matrix.finite_or_none(reduction.min),
        max_temp=matrix.finite_or_none(reduction.max),
        pixels=matrix.transport_pixels(grid),
    )


@router.get("/evolution/{filename}", response_model=EvolutionPoint)
async def get_evolution(filename: str, state: CloudState = Depends(get_cloud_state)) -> EvolutionPoint:
    try:
        validate_capture_name(filename)
    except ValidationError as exc:
        raise _http_error(exc) from exc

    _, reduction = await _load_grid(state, filename)
    return EvolutionPoint(
        frame_index=0,
        max_temp=matrix.finite_or_none(reduction.max),
        avg_temp=matrix.finite_or_none(reduction.mean),
    )
