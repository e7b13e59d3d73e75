import asyncio
import math
import pathlib
import uuid
from typing import Optional

import structlog

from . import matrix
from .errors import DecodeError
from .metrics import ALERTS_CACHED, DECODE_FAILURES_TOTAL, HEARTBEATS_TOTAL, UPLOADS_TOTAL
from .schemas import AlertRecord, LiveStatus, RemoteConfig
from .state import CloudState
from .storage import CAPTURE_EXTENSIONS

logger = structlog.get_logger(__name__)

DEFAULT_CAPTURE_EXTENSION = "npy"


def parse_angle(raw: Optional[str]) -> float:
    """Form angle as float; anything unparsable counts as 0."""
    if raw is None:
        return 0.0
    try:
        angle = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return angle if math.isfinite(angle) else 0.0


def capture_extension(original_filename: Optional[str]) -> str:
    suffix = pathlib.PurePath(original_filename or "").suffix.lower()
    if suffix in CAPTURE_EXTENSIONS:
        return suffix[1:]
    return DEFAULT_CAPTURE_EXTENSION


def capture_name(turbine_token: str, timestamp: int, extension: str = DEFAULT_CAPTURE_EXTENSION) -> str:
    return f"capture_{turbine_token}_{timestamp}.{extension}"


def apply_heartbeat(state: CloudState, status: LiveStatus) -> RemoteConfig:
    """Store the robot's status and hand back the authoritative config."""
    stored = state.store.set_status(status)
    HEARTBEATS_TOTAL.inc()
    logger.debug(
        "heartbeat_applied",
        turbine_token=stored.turbine_token,
        mode=stored.mode,
        angle=stored.current_angle,
    )
    return state.store.get_config()


async def peak_temperature(data: bytes, name: str) -> float:
    """Max cell of the capture, or 0 when it cannot be decoded."""
    try:
        _, reduction = await asyncio.to_thread(matrix.analyze, data)
    except DecodeError as exc:
        DECODE_FAILURES_TOTAL.inc()
        logger.warning("capture_decode_failed", name=name, error=str(exc))
        return 0.0
    if not math.isfinite(reduction.max):
        logger.warning("capture_peak_not_finite", name=name, peak=str(reduction.max))
        return 0.0
    return reduction.max


async def ingest_capture(
    state: CloudState,
    turbine_token: str,
    angle: float,
    data: Optional[bytes],
    original_filename: Optional[str] = None,
) -> Optional[AlertRecord]:
    """Persist an uploaded capture and record an alert for it.

    Returns None when the upload carried no (or an empty) file. Storage errors propagate
    and leave the alert history untouched; decode errors only zero the peak.
    """
    if not data:
        UPLOADS_TOTAL.labels(outcome="no_file").inc()
        logger.info("upload_without_file", turbine_token=turbine_token)
        return None

    timestamp = int(state.store.clock())
    name = capture_name(turbine_token, timestamp, capture_extension(original_filename))
    try:
        await asyncio.to_thread(state.captures.save, name, data)
    except Exception:
        UPLOADS_TOTAL.labels(outcome="failed").inc()
        raise

    max_temp = await peak_temperature(data, name)
    record = AlertRecord(
        id=str(uuid.uuid4()),
        timestamp=timestamp,
        turbine_token=turbine_token,
        max_temp=max_temp,
        angle=angle,
        dataset_path=name,
    )
    state.alerts.push_front(record)
    ALERTS_CACHED.set(len(state.alerts))
    UPLOADS_TOTAL.labels(outcome="stored").inc()
    logger.info(
        "alert_recorded",
        alert_id=record.id,
        turbine_token=turbine_token,
        max_temp=max_temp,
        angle=angle,
        dataset_path=name,
    )
    return record
