"""
services/console_export.py

Export envelopes for result groups and continuous sessions (JSON via orjson)
and CSV for table-like values (records or dict of columns).
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
import io
from pathlib import Path
from typing import Any, List, Optional, Union

import orjson
from pydantic import BaseModel
import structlog

from core.result_classifier import is_records, table_from_columns, table_from_records
from core.session_ledger import ContinuousSession, PolledResult, ResultGroup


log = structlog.get_logger(__name__)


def iso_ms(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat(timespec="milliseconds")


# -------------------- envelopes (start)
class PolledResultExport(BaseModel):
    timestamp: str
    coordinates: dict[str, float]
    result: Any = None
    error: Optional[str] = None


class GroupExport(BaseModel):
    id: str
    query: str
    query_timestamp: str
    response: Any = None
    response_timestamp: Optional[str] = None
    error: Optional[str] = None
    error_timestamp: Optional[str] = None


class SessionExport(BaseModel):
    id: str
    mode: str
    query: str
    start_time: str
    end_time: Optional[str] = None
    result_count: int
    results: List[PolledResultExport]


def build_group_export(group: ResultGroup) -> GroupExport:
    return GroupExport(
        id=group.id,
        query=group.query,
        query_timestamp=iso_ms(group.query_time),
        response=group.response if group.is_success else None,
        response_timestamp=iso_ms(group.response_time),
        error=group.error_text,
        error_timestamp=iso_ms(group.error_time),
    )


def _polled_export(polled: PolledResult) -> PolledResultExport:
    return PolledResultExport(
        timestamp=iso_ms(polled.timestamp),
        coordinates=polled.coordinates,
        result=polled.result,
        error=polled.error,
    )


def build_session_export(session: ContinuousSession) -> SessionExport:
    return SessionExport(
        id=session.id,
        mode=session.mode.value,
        query=session.query,
        start_time=iso_ms(session.start_time),
        end_time=iso_ms(session.end_time),
        result_count=len(session.results),
        results=[_polled_export(p) for p in session.results],
    )


# -------------------- envelopes (end)


def to_json(envelope: BaseModel) -> bytes:
    return orjson.dumps(envelope.model_dump(mode="json"), option=orjson.OPT_INDENT_2, default=str)


# -------------------- CSV (start)
def can_export_csv(value: Any) -> bool:
    if is_records(value):
        return True
    return isinstance(value, dict) and bool(value) and all(isinstance(v, list) for v in value.values())


def _csv_cell(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v
    return orjson.dumps(v, default=str).decode("utf-8")


def to_csv(value: Any) -> str:
    """
    Header line plus one line per row. Column dicts are zipped into rows;
    shorter columns leave trailing cells empty.

    Raises:
        ValueError: value is not table-like
    """
    if is_records(value):
        table = table_from_records(value)
    elif can_export_csv(value):
        n_rows = max(len(col) for col in value.values())
        padded = {k: list(col) + [None] * (n_rows - len(col)) for k, col in value.items()}
        table = table_from_columns(padded)
    else:
        raise ValueError("value is not table-like (records or dict of columns)")

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(table.columns)
    for row in table.rows:
        writer.writerow([_csv_cell(row.get(c)) for c in table.columns])
    return buf.getvalue().rstrip("\n")


# -------------------- CSV (end)


def write_export(path: Union[str, Path], item: Union[ResultGroup, ContinuousSession]) -> Path:
    """
    Write a group or session to ``path``. A ``.csv`` path writes the group's
    response as CSV; anything else writes the JSON envelope.
    """
    path = Path(path)
    if path.suffix.lower() == ".csv":
        if not isinstance(item, ResultGroup) or not can_export_csv(item.response):
            raise ValueError("only table-like group responses can be exported as CSV")
        path.write_text(to_csv(item.response), encoding="utf-8")
    else:
        envelope = build_group_export(item) if isinstance(item, ResultGroup) else build_session_export(item)
        path.write_bytes(to_json(envelope))
    log.info("export.written", path=str(path), item=item.id)
    return path
