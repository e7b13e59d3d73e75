from typing import Any, Optional

import structlog
from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile, status

from ..errors import StorageIOError, ValidationError
from ..pipeline import apply_heartbeat, ingest_capture, parse_angle
from ..schemas import LiveStatus, RemoteConfig, TurbineEvent
from ..state import CloudState
from .deps import get_cloud_state, get_live_feed
from .ws import LiveFeed

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/heartbeat", response_model=RemoteConfig)
async def heartbeat(
    status_in: LiveStatus,
    state: CloudState = Depends(get_cloud_state),
    feed: LiveFeed = Depends(get_live_feed),
) -> RemoteConfig:
    """Robot status push; the response carries the current configuration."""

    config = apply_heartbeat(state, status_in)
    live = state.store.get_status()
    await feed.broadcast({"type": "heartbeat", **live.model_dump()})
    return config


@router.post("/upload")
async def upload_capture(
    turbine_token: str = Form("unknown"),
    angle: Optional[str] = Form(None),
    dataset_file: Optional[UploadFile] = File(None),
    state: CloudState = Depends(get_cloud_state),
    feed: LiveFeed = Depends(get_live_feed),
):
    """Multipart capture upload from a robot."""

    data = await dataset_file.read() if dataset_file is not None else None
    try:
        record = await ingest_capture(
            state,
            turbine_token=turbine_token,
            angle=parse_angle(angle),
            data=data,
            original_filename=dataset_file.filename if dataset_file is not None else None,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorageIOError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="could not store capture") from exc

    if record is not None:
        await feed.broadcast({"type": "alert", **record.model_dump()})
    return "upload_success"


@router.post("/telemetry")
async def ingest_telemetry(payload: Any = Body(...)):
    """Free-form telemetry, only logged."""

    logger.info("telemetry_received", payload=payload)
    return "ack"


@router.post("/event")
async def ingest_event(event: TurbineEvent):
    """Hot-spot event detected on board the robot."""

    logger.warning(
        "turbine_event",
        turbine_token=event.turbine_token,
        max_temp=event.max_temp_detected,
        angle=event.angle_position,
        capture_timestamp=event.capture_timestamp,
    )
    return "event_recorded"
