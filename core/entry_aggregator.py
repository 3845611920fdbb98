"""
Entry Aggregator - read-time projection of the ledger for display.

Merges result groups, ad-hoc log entries and continuous sessions into one
list ordered by creation time and keeps only the newest ``cap`` entries. The
ledger itself is never trimmed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Union

from config.settings import DISPLAY_ENTRY_CAP
from core.session_ledger import ContinuousSession, LogEntry, ResultGroup, SessionLedger


Record = Union[ResultGroup, LogEntry, ContinuousSession]


@dataclass(frozen=True)
class DisplayEntry:
    kind: str  # "group" | "log" | "session"
    created_at: int
    record: Record

    @property
    def id(self) -> str:
        return self.record.id


def merge_entries(
    groups: Iterable[ResultGroup],
    log_entries: Iterable[LogEntry],
    sessions: Iterable[ContinuousSession],
    cap: int = DISPLAY_ENTRY_CAP,
) -> List[DisplayEntry]:
    """Stable merge by created_at (ties keep group, log, session input order), newest ``cap`` kept."""
    merged = (
        [DisplayEntry("group", g.created_at, g) for g in groups]
        + [DisplayEntry("log", e.created_at, e) for e in log_entries]
        + [DisplayEntry("session", s.created_at, s) for s in sessions]
    )
    merged.sort(key=lambda entry: entry.created_at)
    if cap <= 0:
        return []
    return merged[-cap:]


def aggregate(ledger: SessionLedger, cap: int = DISPLAY_ENTRY_CAP) -> List[DisplayEntry]:
    return merge_entries(ledger.groups, ledger.log_entries, ledger.sessions, cap=cap)
