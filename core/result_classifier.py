"""
Result Classifier

Decides how a decoded kdb+ reply should be visualized and extracts the
normalized structure for that mode:

    table          array of records, or dict of equal-length columns
    numericSeries  non-empty array of finite numbers
    matrixImage    2-D numeric matrix (grayscale) or 2-D matrix of RGB/RGBA
                   tuples (color); stacks of either are animation frames
    text           everything else

Arrays of 3/4-element numeric arrays are treated as color images rather than
three or four chart columns. Engine errors must be checked with
detect_engine_error() before classifying.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
from typing import Any, Optional

import numpy as np
import structlog

from config.settings import DEBUG_DATA


log = structlog.get_logger(__name__)


class Shape(str, Enum):
    TABLE = "table"
    NUMERIC_SERIES = "numericSeries"
    MATRIX_IMAGE = "matrixImage"
    TEXT = "text"


@dataclass
class TableData:
    """Row-oriented table; ``columns`` is the union of keys in first-seen order"""

    columns: list[str]
    rows: list[dict]

    def cell(self, row_index: int, column: str) -> Any:
        return self.rows[row_index].get(column)

    def column_values(self, column: str) -> list[Any]:
        return [row.get(column) for row in self.rows]

    def numeric_columns(self) -> list[str]:
        return [c for c in self.columns if any(is_number(v) for v in self.column_values(c))]

    def as_text_grid(self) -> list[list[str]]:
        """Header row plus body rows, missing values rendered empty"""
        body = [["" if row.get(c) is None else str(row.get(c)) for c in self.columns] for row in self.rows]
        return [list(self.columns)] + body


@dataclass
class ImageData:
    """
    Canvas-ready pixels.

    pixels: uint8 array shaped (frames, rows, cols) for grayscale or
            (frames, rows, cols, 4) RGBA for color
    """

    pixels: np.ndarray
    color: bool

    @property
    def frames(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def dims(self) -> tuple[int, int]:
        return int(self.pixels.shape[1]), int(self.pixels.shape[2])


@dataclass
class Classification:
    shape: Shape
    value: Any
    table: Optional[TableData] = None
    series: Optional[np.ndarray] = None
    image: Optional[ImageData] = None
    text: Optional[str] = None


# -------------------- predicates (start)
def is_number(v: Any) -> bool:
    """Finite int/float; booleans do not count"""
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def is_records(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0 and all(isinstance(row, dict) for row in value)


def is_column_dict(value: Any) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    columns = list(value.values())
    if not all(isinstance(col, list) for col in columns):
        return False
    return len({len(col) for col in columns}) == 1


def is_numeric_series(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0 and all(is_number(v) for v in value)


def _is_rectangular(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    if not all(isinstance(row, list) and row for row in value):
        return False
    return len({len(row) for row in value}) == 1


def is_grayscale_matrix(value: Any) -> bool:
    return _is_rectangular(value) and all(is_number(v) for row in value for v in row)


def is_color_matrix(value: Any) -> bool:
    if not _is_rectangular(value):
        return False
    widths = set()
    for row in value:
        for pix in row:
            if not isinstance(pix, list) or len(pix) not in (3, 4) or not all(is_number(c) for c in pix):
                return False
            widths.add(len(pix))
    return len(widths) == 1


def _same_frame_shape(frames: list) -> bool:
    return len({(len(f), len(f[0])) for f in frames}) == 1


def is_grayscale_frames(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(is_grayscale_matrix(frame) for frame in value)
        and _same_frame_shape(value)
    )


def is_color_frames(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(is_color_matrix(frame) for frame in value)
        and _same_frame_shape(value)
        and len({len(frame[0][0]) for frame in value}) == 1
    )


def is_visual_worthy(value: Any) -> bool:
    """
    Whether a successful result is worth sending to the visualization sink.
    Plain scalars, text, null, empty arrays and all-null arrays are not.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return False
    if isinstance(value, list) and (len(value) == 0 or all(item is None for item in value)):
        return False
    return True


# -------------------- predicates (end)


def detect_engine_error(value: Any) -> Optional[str]:
    """
    Return the engine's error message when a decoded reply is an error object
    (``{"error": "ExecutionError", "msg": "type"}``), else None.
    """
    if not isinstance(value, dict):
        return None
    flag = value.get("error") or value.get("Error")
    if not flag:
        return None
    message = value.get("msg") or value.get("message") or flag or "Unknown KDB+ error"
    return str(message)


# -------------------- normalization (start)
def table_from_records(records: list[dict]) -> TableData:
    columns: list[str] = []
    seen = set()
    for row in records:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return TableData(columns=columns, rows=list(records))


def table_from_columns(data: dict) -> TableData:
    columns = list(data.keys())
    n_rows = len(data[columns[0]]) if columns else 0
    rows = [{c: data[c][i] for c in columns} for i in range(n_rows)]
    return TableData(columns=columns, rows=rows)


def _grayscale_to_pixels(frame: Any) -> np.ndarray:
    arr = np.asarray(frame, dtype=np.float64)
    lo, hi = float(arr.min()), float(arr.max())
    if hi > lo:
        scaled = np.round((arr - lo) / (hi - lo) * 255.0)
    else:
        scaled = np.full(arr.shape, min(hi, 255.0))
    return np.clip(scaled, 0, 255).astype(np.uint8)


def _color_to_pixels(frame: Any) -> np.ndarray:
    arr = np.asarray(frame, dtype=np.float64)
    # channels in [0, 1] are fractions, anything larger is already 0..255
    arr = np.where(arr <= 1.0, arr * 255.0, arr)
    if arr.shape[-1] == 3:
        alpha = np.full(arr.shape[:-1] + (1,), 255.0)
        arr = np.concatenate([arr, alpha], axis=-1)
    return np.clip(np.round(arr), 0, 255).astype(np.uint8)


def image_from_matrix(value: Any, color: bool, frames: bool = False) -> ImageData:
    stack = value if frames else [value]
    convert = _color_to_pixels if color else _grayscale_to_pixels
    pixels = np.stack([convert(frame) for frame in stack])
    return ImageData(pixels=pixels, color=color)


# -------------------- normalization (end)


def classify(value: Any) -> Classification:
    """Classify a decoded (non-error) reply and extract its normalized data."""
    if is_records(value):
        result = Classification(Shape.TABLE, value, table=table_from_records(value))
    elif is_column_dict(value):
        result = Classification(Shape.TABLE, value, table=table_from_columns(value))
    elif is_color_matrix(value):
        result = Classification(Shape.MATRIX_IMAGE, value, image=image_from_matrix(value, color=True))
    elif is_grayscale_matrix(value):
        result = Classification(Shape.MATRIX_IMAGE, value, image=image_from_matrix(value, color=False))
    elif is_color_frames(value):
        result = Classification(Shape.MATRIX_IMAGE, value, image=image_from_matrix(value, color=True, frames=True))
    elif is_grayscale_frames(value):
        result = Classification(Shape.MATRIX_IMAGE, value, image=image_from_matrix(value, color=False, frames=True))
    elif is_numeric_series(value):
        result = Classification(Shape.NUMERIC_SERIES, value, series=np.asarray(value, dtype=np.float64))
    else:
        from core.result_formatter import format_result

        result = Classification(Shape.TEXT, value, text=format_result(value))

    if DEBUG_DATA:
        log.debug("classify.result", shape=result.shape.value, kind=type(value).__name__)
    return result
