"""
Thermal matrix codec.

Captures are NumPy containers holding a single 2-D float32 frame:
- ``.npy``: the array itself; width/height come from the header
- ``.npz``: an archive, the first stored array is the frame

Pickled/object payloads are refused.
"""

import io
import math
import zipfile
import zlib
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DecodeError

NUMERIC_KINDS = "biuf"
ZIP_MAGIC = b"PK\x03\x04"


class ThermalGrid:
    """A single thermal frame stored as a 2-D float32 array."""

    # Files hold one frame. Multi-frame containers would raise this count.
    frame_count = 1

    def __init__(self, values: np.ndarray) -> None:
        if values.ndim != 2:
            raise ValueError(f"thermal grid must be 2-D, got shape {values.shape}")
        self._values = values.astype(np.float32, copy=False)

    @property
    def values(self) -> np.ndarray:
        return self._values

    def dimensions(self) -> Tuple[int, int]:
        rows, cols = self._values.shape
        return int(rows), int(cols)

    def flatten_row_major(self) -> List[float]:
        # order="C" walks logical (row, col) order even for Fortran-ordered storage.
        return self._values.ravel(order="C").tolist()


@dataclass(frozen=True)
class Reduction:
    min: float
    max: float
    mean: float


def _as_grid(array: np.ndarray) -> ThermalGrid:
    if not isinstance(array, np.ndarray):
        raise DecodeError("capture does not hold a numeric array")
    if array.dtype.kind not in NUMERIC_KINDS:
        raise DecodeError(f"unsupported dtype {array.dtype}")
    if array.ndim == 3 and array.shape[0] == 1:
        array = array[0]
    if array.ndim != 2:
        raise DecodeError(f"expected a single 2-D frame, got shape {array.shape}")
    return ThermalGrid(array)


def _check_npy_header(data: bytes) -> None:
    """Validate the .npy header before numpy allocates anything.

    The declared shape must fit inside the bytes that follow the header.
    """
    fp = io.BytesIO(data)
    try:
        version = np.lib.format.read_magic(fp)
        if version == (1, 0):
            shape, _, dtype = np.lib.format.read_array_header_1_0(fp)
        elif version == (2, 0):
            shape, _, dtype = np.lib.format.read_array_header_2_0(fp)
        else:
            raise DecodeError(f"unsupported npy version {version[0]}.{version[1]}")
    except (ValueError, TypeError, EOFError) as exc:
        raise DecodeError(f"not a numeric array container: {exc}") from exc
    if dtype.hasobject:
        raise DecodeError("object arrays are not accepted")
    declared = math.prod(shape) * dtype.itemsize
    if declared > len(data) - fp.tell():
        raise DecodeError(f"header declares shape {shape} but payload is too short")


def _read_npy(data: bytes) -> np.ndarray:
    _check_npy_header(data)
    try:
        return np.load(io.BytesIO(data), allow_pickle=False)
    except (ValueError, OSError, EOFError, MemoryError) as exc:
        raise DecodeError(f"unreadable array payload: {exc}") from exc


def _first_npz_member(data: bytes) -> bytes:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            members = archive.namelist()
            if not members:
                raise DecodeError("archive holds no arrays")
            first = members[0]
            if not first.endswith(".npy"):
                raise DecodeError(f"archive member {first} is not an array")
            return archive.read(first)
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, OSError, EOFError) as exc:
        raise DecodeError(f"unreadable archive: {exc}") from exc


def parse(data: bytes) -> ThermalGrid:
    if not data:
        raise DecodeError("empty capture payload")
    if data.startswith(ZIP_MAGIC):
        data = _first_npz_member(data)
    return _as_grid(_read_npy(data))


def reduce(grid: ThermalGrid) -> Reduction:
    """Min/max/mean over every cell.

    Folds start at +inf/-inf so all-negative data and empty grids behave;
    NaN cells propagate into min and max. Mean is 0 for an empty grid.
    """
    values = grid.values
    count = values.size
    lowest = float(np.min(values, initial=np.inf))
    highest = float(np.max(values, initial=-np.inf))
    mean = float(values.sum(dtype=np.float64) / count) if count else 0.0
    return Reduction(min=lowest, max=highest, mean=mean)


def analyze(data: bytes) -> Tuple[ThermalGrid, Reduction]:
    grid = parse(data)
    return grid, reduce(grid)


def encode(grid: Union[ThermalGrid, np.ndarray, Sequence[Sequence[float]]]) -> bytes:
    """Serialize a frame as a float32 ``.npy`` payload."""
    if isinstance(grid, ThermalGrid):
        values = grid.values
    else:
        values = np.asarray(grid, dtype=np.float32)
    if values.ndim != 2:
        raise ValueError(f"thermal grid must be 2-D, got shape {values.shape}")
    buffer = io.BytesIO()
    np.save(buffer, values.astype(np.float32, copy=False), allow_pickle=False)
    return buffer.getvalue()


def finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def transport_pixels(grid: ThermalGrid) -> List[Optional[float]]:
    """Row-major pixel list with non-finite cells as None (JSON null)."""
    pixels = grid.flatten_row_major()
    if np.isfinite(grid.values).all():
        return pixels
    return [finite_or_none(p) for p in pixels]
