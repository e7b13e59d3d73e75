import os
from dataclasses import dataclass
from typing import Optional

# Default keeps local development simple: captures land next to the process.
DEFAULT_STORAGE_DIR = "cloud_storage"

# Alert history never holds more than this many records.
MAX_ALERT_HISTORY = 50


@dataclass(frozen=True)
class Settings:
    storage_dir: str = DEFAULT_STORAGE_DIR
    staleness_seconds: float = 5.0
    alert_history_limit: int = 50
    max_temp_trigger: float = 80.0
    scan_wait_time_sec: int = 10
    pan_step_degrees: float = 15.0
    host: str = "0.0.0.0"
    port: int = 8080
    api_token: Optional[str] = None
    log_level: str = "INFO"


def get_storage_dir() -> str:
    return os.environ.get("GSU_STORAGE_DIR", DEFAULT_STORAGE_DIR)


def get_settings() -> Settings:
    """Build settings from GSU_* environment variables."""
    return Settings(
        storage_dir=get_storage_dir(),
        staleness_seconds=float(os.getenv("GSU_STALENESS_SECONDS", "5")),
        alert_history_limit=min(int(os.getenv("GSU_ALERT_HISTORY_LIMIT", "50")), MAX_ALERT_HISTORY),
        max_temp_trigger=float(os.getenv("GSU_MAX_TEMP_TRIGGER", "80.0")),
        scan_wait_time_sec=int(os.getenv("GSU_SCAN_WAIT_TIME_SEC", "10")),
        pan_step_degrees=float(os.getenv("GSU_PAN_STEP_DEGREES", "15.0")),
        host=os.getenv("GSU_HOST", "0.0.0.0"),
        port=int(os.getenv("GSU_PORT", "8080")),
        api_token=os.getenv("API_TOKEN") or None,
        log_level=os.getenv("GSU_LOG_LEVEL", "INFO").upper(),
    )
