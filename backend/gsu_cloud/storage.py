import pathlib
from dataclasses import dataclass
from datetime import datetime
from typing import List

import structlog

from .errors import NotFoundError, StorageIOError, ValidationError
from .metrics import CAPTURE_FILES, CAPTURE_OVERWRITES_TOTAL

logger = structlog.get_logger(__name__)

CAPTURE_EXTENSIONS = (".npy", ".npz")
UNSAFE_SEQUENCES = ("..", "/", "\\", "\x00")


@dataclass(frozen=True)
class CaptureInfo:
    name: str
    size: int
    modified_time: datetime


def validate_capture_name(name: str) -> str:
    """Reject names that could resolve outside the storage directory."""
    if not name or name.strip() != name:
        raise ValidationError("invalid capture name")
    for seq in UNSAFE_SEQUENCES:
        if seq in name:
            raise ValidationError("invalid capture name")
    return name


class CaptureStore:
    """Flat directory of capture files, one file per upload."""

    def __init__(self, root: str) -> None:
        self.root = pathlib.Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> pathlib.Path:
        validate_capture_name(name)
        path = self.root / name
        if path.parent != self.root:
            raise ValidationError("invalid capture name")
        return path

    def save(self, name: str, data: bytes) -> None:
        path = self.path_for(name)
        # Same token within the same second maps to the same name; last write wins.
        if path.exists():
            CAPTURE_OVERWRITES_TOTAL.inc()
            logger.warning("capture_overwritten", name=name)
        try:
            path.write_bytes(data)
        except OSError as exc:
            logger.error("capture_write_failed", name=name, error=str(exc))
            raise StorageIOError(f"could not write {name}") from exc
        logger.info("capture_saved", name=name, size=len(data))

    def read(self, name: str) -> bytes:
        path = self.path_for(name)
        if not path.is_file():
            raise NotFoundError(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(name) from exc
        except OSError as exc:
            raise StorageIOError(f"could not read {name}") from exc

    def list(self) -> List[CaptureInfo]:
        """Recognized capture files, newest first."""
        captures: List[CaptureInfo] = []
        try:
            entries = list(self.root.iterdir())
        except OSError as exc:
            raise StorageIOError("could not list capture directory") from exc
        for entry in entries:
            if entry.suffix.lower() not in CAPTURE_EXTENSIONS or not entry.is_file():
                continue
            try:
                stat = entry.stat()
            except FileNotFoundError:
                # Removed between iterdir() and stat().
                continue
            captures.append(
                CaptureInfo(
                    name=entry.name,
                    size=stat.st_size,
                    modified_time=datetime.fromtimestamp(stat.st_mtime),
                )
            )
        captures.sort(key=lambda c: (c.modified_time, c.name), reverse=True)
        CAPTURE_FILES.set(len(captures))
        return captures
