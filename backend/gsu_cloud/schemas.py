from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteConfig(BaseModel):
    """Operator-owned configuration pulled by the turbine on every heartbeat.

    Always replaced as a whole; ``api_key=None`` means unset, which is not the
    same as an empty string.
    """

    max_temp_trigger: float
    scan_wait_time_sec: int = Field(ge=0)
    system_enabled: bool
    pan_step_degrees: float
    api_key: Optional[str] = None


class LiveStatus(BaseModel):
    """Latest status reported by the turbine.

    ``last_update`` and ``is_online`` are stamped by the server; robots may omit them.
    """

    last_update: int = 0
    turbine_token: str
    mode: str
    current_angle: float
    current_max_temp: float
    is_online: bool = False


class AlertRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int
    turbine_token: str
    max_temp: float
    angle: float
    dataset_path: str


class TurbineEvent(BaseModel):
    """Event pushed by robots that detect a hot spot on board."""

    turbine_token: str
    capture_timestamp: int
    angle_position: float
    max_temp_detected: float


class CaptureFile(BaseModel):
    name: str
    size_kb: float
    date: str
    type: str


class MatrixView(BaseModel):
    """Decoded heat map; pixels are row-major, ``width`` values per row."""

    width: int
    height: int
    min_temp: Optional[float]
    max_temp: Optional[float]
    pixels: List[Optional[float]] = Field(default_factory=list)


class EvolutionPoint(BaseModel):
    frame_index: int
    max_temp: Optional[float]
    avg_temp: Optional[float]
