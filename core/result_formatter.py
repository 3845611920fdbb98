"""
Text rendering of kdb+ results for the console output.

format_result()      full text of a value (grid, joined row, summary or JSON)
collapsed_summary()  one-line label shown while an entry is collapsed
should_auto_expand() whether a freshly settled entry opens by itself
preview()            truncated text shown for collapsed long output
"""

from __future__ import annotations

import math
from typing import Any, List

import numpy as np
import orjson

from core.result_classifier import is_number


# -------------------- limits (start)
SUMMARY_ELEMENT_THRESHOLD = 30
GRID_MAX_ROWS = 50
GRID_MAX_COLS = 20
GRID_MAX_CELL = 30
GRID_SEP = "  "

AUTO_EXPAND_MAX_CHARS = 240
AUTO_EXPAND_MAX_LINES = 6
AUTO_EXPAND_MAX_ERROR_LINES = 3
PREVIEW_MAX_LINES = 8
PREVIEW_MAX_CHARS = 320
ELLIPSIS = "..."
SUMMARY_CLIP = 50
# -------------------- limits (end)


def scalar_text(v: Any) -> str:
    """Render a leaf value the way the engine's JSON reads."""
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and math.isfinite(v) and v.is_integer():
        return str(int(v))
    if isinstance(v, (dict, list)):
        return _json(v, indent=False)
    return str(v)


def _json(value: Any, indent: bool = True) -> str:
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(value, option=option | orjson.OPT_NON_STR_KEYS, default=str).decode("utf-8")


# -------------------- array helpers (start)
def _count_elements(value: Any) -> int:
    if isinstance(value, list):
        return sum(_count_elements(el) for el in value)
    return 1


def _shape(value: Any) -> List[int]:
    shape = []
    cur = value
    while isinstance(cur, list):
        shape.append(len(cur))
        if not cur:
            break
        cur = cur[0]
    return shape


def _flatten_numbers(value: Any, out: List[float]) -> List[float]:
    if isinstance(value, list):
        for el in value:
            _flatten_numbers(el, out)
    elif is_number(value):
        out.append(float(value))
    return out


def _is_record_list(value: list) -> bool:
    return len(value) > 0 and all(isinstance(el, dict) for el in value)


def _union_columns(records: list) -> List[str]:
    """Column names across all records, in first-seen order."""
    columns: List[str] = []
    for row in records:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


# -------------------- array helpers (end)


# -------------------- summaries (start)
def _table_summary(table: list) -> str:
    columns = _union_columns(table)
    lines = [f"Table Summary ({len(table)} rows, {len(columns)} columns)", f"Columns: {', '.join(columns)}"]

    for col in columns:
        values = [row.get(col) for row in table if row.get(col) is not None]
        null_count = len(table) - len(values)
        if not values:
            lines.append(f"  {col}: all null")
            continue

        type_str = "|".join(sorted({type(v).__name__ for v in values}))
        numeric = np.asarray([v for v in values if is_number(v)], dtype=np.float64)
        if numeric.size:
            lines.append(
                f"  {col} ({type_str}): min={numeric.min():.2f}, max={numeric.max():.2f}, "
                f"mean={numeric.mean():.2f}, std={numeric.std():.2f}"
            )
        else:
            sample = values[:3]
            unique = len({scalar_text(v) for v in values})
            sample_str = ", ".join(scalar_text(v)[:20] for v in sample)
            more = ELLIPSIS if len(sample) < len(values) else ""
            lines.append(f"  {col} ({type_str}): {unique} unique values, sample: {sample_str}{more}")

        if null_count:
            lines.append(f"    nulls: {null_count}/{len(table)} ({null_count / len(table) * 100:.1f}%)")

    return "\n".join(lines)


def _matrix_summary(matrix: list) -> str:
    rows = len(matrix)
    cols = len(matrix[0]) if matrix else 0
    lines = [f"Matrix Summary ({rows} rows x {cols} columns)"]

    flat = [v for row in matrix for v in row]
    nums = np.asarray([v for v in flat if is_number(v)], dtype=np.float64)
    if nums.size:
        lines.append(
            f"  Numeric stats: min={nums.min():.4f}, max={nums.max():.4f}, "
            f"mean={nums.mean():.4f}, std={nums.std():.4f}"
        )

    null_count = sum(1 for v in flat if v is None)
    total = rows * cols
    if null_count and total:
        lines.append(f"  Nulls: {null_count}/{total} ({null_count / total * 100:.1f}%)")

    sample_rows, sample_cols = min(3, rows), min(5, cols)
    if sample_rows < rows or sample_cols < cols:
        lines.append(f"  Sample ({sample_rows}x{sample_cols}):")
        for row in matrix[:sample_rows]:
            cells = ", ".join(scalar_text(v)[:8] for v in row[:sample_cols])
            lines.append(f"    [{cells}{ELLIPSIS if sample_cols < cols else ''}]")
        if sample_rows < rows:
            lines.append(f"    {ELLIPSIS}")
    return "\n".join(lines)


def _array_summary(value: list) -> str:
    shape = _shape(value)
    nums = np.asarray(_flatten_numbers(value, []), dtype=np.float64)
    mean = f"{nums.mean():.4f}" if nums.size else "n/a"
    std = f"{nums.std():.4f}" if nums.size else "n/a"
    return "\n".join(
        [
            f"{len(shape)}D array summary",
            f"shape : {' x '.join(str(n) for n in shape)}",
            f"size  : {_count_elements(value)}",
            f"mean  : {mean}",
            f"std   : {std}",
        ]
    )


# -------------------- summaries (end)


def _records_to_grid(records: list) -> list:
    headers = _union_columns(records)

    def cell(v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, list):
            return "[...]"
        if isinstance(v, dict):
            return "{...}"
        return scalar_text(v)

    return [headers] + [[cell(row.get(h)) for h in headers] for row in records]


def _text_grid(grid: list, indent: str) -> str:
    rows_total = len(grid)
    cols_total = len(grid[0]) if grid else 0
    rows_cut = rows_total > GRID_MAX_ROWS
    cols_cut = cols_total > GRID_MAX_COLS

    display = [row[:GRID_MAX_COLS] for row in grid[:GRID_MAX_ROWS]]
    cell_cut = False
    cells: List[List[str]] = []
    for row in display:
        out = []
        for v in row:
            s = v if isinstance(v, str) else scalar_text(v)
            if len(s) > GRID_MAX_CELL:
                cell_cut = True
                s = s[: GRID_MAX_CELL - len(ELLIPSIS)] + ELLIPSIS
            out.append(s)
        cells.append(out)

    n_cols = max((len(r) for r in cells), default=0)
    widths = [max((len(r[i]) for r in cells if i < len(r)), default=0) for i in range(n_cols)]
    lines = [
        indent + GRID_SEP.join(s.ljust(widths[i]) for i, s in enumerate(row)).rstrip() for row in cells
    ]
    text = "\n".join(lines)

    if rows_cut or cols_cut or cell_cut:
        parts = []
        if rows_cut or cols_cut:
            shown_cols = len(display[0]) if display else 0
            parts.append(f"dims {len(display)}x{shown_cols} of {rows_total}x{cols_total}")
        if cell_cut:
            parts.append("some cells truncated")
        text += f"\n{indent}... (output truncated: {', '.join(parts)}) ..."
    return text


def _format_array(value: Any, depth: int = 0) -> str:
    indent = "  " * depth

    if depth == 0 and _count_elements(value) > SUMMARY_ELEMENT_THRESHOLD:
        if _is_record_list(value):
            return _table_summary(value)
        if len(_shape(value)) == 2 and all(isinstance(el, list) for el in value):
            return _matrix_summary(value)
        return _array_summary(value)

    if not isinstance(value, list):
        return indent + scalar_text(value)

    if depth == 0 and _is_record_list(value):
        value = _records_to_grid(value)

    if all(not isinstance(el, list) for el in value):
        return indent + " ".join("" if el is None else scalar_text(el) for el in value)

    if all(isinstance(el, list) and all(not isinstance(sub, list) for sub in el) for el in value):
        return _text_grid(value, indent)

    return "\n\n".join(_format_array(sub, depth + 1) for sub in value)


def format_result(value: Any) -> str:
    """Full text rendering of a decoded reply."""
    if isinstance(value, list):
        return _format_array(value)
    if isinstance(value, dict):
        return _json(value)
    if isinstance(value, str):
        return value
    return scalar_text(value)


def collapsed_summary(value: Any) -> str:
    if isinstance(value, list):
        if not value:
            return "Empty Array"
        if _is_record_list(value):
            return f"Table ({len(value)} rows)"
        return f"Array({len(value)})"
    if value is None:
        return "null"
    if isinstance(value, dict):
        if not value:
            return "Empty Object"
        return f"Object ({len(value)} properties)"
    text = scalar_text(value)
    return text[:SUMMARY_CLIP] + ELLIPSIS if len(text) > SUMMARY_CLIP else text


def should_auto_expand(text: str, is_error: bool = False) -> bool:
    """
    Short output opens by itself; errors get a tighter line budget.

    Both budgets must hold: a 240-char single line still expands, but a
    short text spread over many lines stays collapsed.
    """
    max_lines = AUTO_EXPAND_MAX_ERROR_LINES if is_error else AUTO_EXPAND_MAX_LINES
    return len(text) <= AUTO_EXPAND_MAX_CHARS and text.count("\n") + 1 <= max_lines


def preview(text: str, max_lines: int = PREVIEW_MAX_LINES, max_chars: int = PREVIEW_MAX_CHARS) -> str:
    """
    First lines of ``text`` for a collapsed entry. A clipped preview always
    ends with an ellipsis and never exceeds ``max_chars``.
    """
    lines = text.split("\n")
    clipped = "\n".join(lines[:max_lines])
    truncated = len(lines) > max_lines
    if len(clipped) > max_chars:
        clipped = clipped[:max_chars]
        truncated = True
    if not truncated:
        return clipped
    return clipped[: max_chars - len(ELLIPSIS)].rstrip() + ELLIPSIS
