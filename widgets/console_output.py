# -------------------- widgets/console_output.py (start)
# File: widgets/console_output.py
# Scrollback view of the console: result groups, ad-hoc log lines and
# continuous sessions, newest at the bottom. Rebuilt from the display
# projection whenever the ledger changes.
from __future__ import annotations

from datetime import datetime
import html
from typing import Callable, List, Optional

from PyQt6 import QtCore, QtGui, QtWidgets

from config.theme import THEME, ColorTheme, entry_color
from core.entry_aggregator import DisplayEntry
from core.result_formatter import collapsed_summary, format_result, preview, scalar_text
from core.session_ledger import ContinuousSession, LogEntry, ResultGroup, SessionLedger


SESSION_TAIL = 5  # polled results shown for an expanded session


def _clock(ms: Optional[int]) -> str:
    return datetime.fromtimestamp(ms / 1000.0).strftime("%H:%M:%S") if ms else ""


def _pre(text: str, kind: str) -> str:
    return f"<pre style='margin:0; color:{entry_color(kind)};'>{html.escape(text)}</pre>"


def _links(record_id: str, *actions: str) -> str:
    return " ".join(
        f"<a href='{action}:{record_id}' style='color:{THEME['fg_muted']};'>{action}</a>" for action in actions
    )


# -------------------- entry rendering (start)
def render_group(group: ResultGroup) -> str:
    head = (
        f"<div><span style='color:{entry_color('query')};'>&gt; {html.escape(group.query)}</span>"
        f" <span style='color:{THEME['fg_muted']};'>{_clock(group.query_time)}</span> "
        f"{_links(group.id, 'toggle', 'export', 'remove')}</div>"
    )
    if group.is_pending:
        return head + _pre("...", "system")
    if group.is_error:
        text = group.error_text or ""
        return head + _pre(text if group.expanded else preview(text), "error")
    if group.expanded:
        return head + _pre(format_result(group.response), "response")
    label = f"<div style='color:{THEME['fg_muted']};'>{html.escape(collapsed_summary(group.response))}</div>"
    return head + label + _pre(preview(format_result(group.response)), "response")


def render_log(entry: LogEntry) -> str:
    text = entry.content if isinstance(entry.content, str) else scalar_text(entry.content)
    return _pre(f"[{entry.kind}] {text}", entry.kind)


def render_session(session: ContinuousSession) -> str:
    status = "running" if session.is_open else f"stopped {_clock(session.end_time)}"
    head = (
        f"<div style='color:{entry_color('session')};'>[{session.mode.value.upper()}] "
        f"{html.escape(session.query)} ({len(session.results)} results, {status}) "
        f"{_links(session.id, 'toggle', 'export', 'remove')}</div>"
    )
    if not session.expanded or not session.results:
        return head
    lines: List[str] = []
    for polled in session.results[-SESSION_TAIL:]:
        body = polled.error if polled.is_error else preview(format_result(polled.result))
        lines.append(f"{_clock(polled.timestamp)} x={polled.x:.3f} y={polled.y:.3f}  {body}")
    return head + _pre("\n".join(lines), "response")


def render_entry(entry: DisplayEntry) -> str:
    if entry.kind == "group":
        return render_group(entry.record)
    if entry.kind == "session":
        return render_session(entry.record)
    return render_log(entry.record)


# -------------------- entry rendering (end)


class ConsoleOutput(QtWidgets.QTextBrowser):
    """
    Read-only scrollback. Action links (toggle / export / remove) are
    reported through entryActionRequested(action, record_id).
    """

    entryActionRequested = QtCore.pyqtSignal(str, str)

    def __init__(
        self,
        ledger: SessionLedger,
        entries: Callable[[], List[DisplayEntry]],
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._entries = entries
        self.setOpenLinks(False)
        self.setFont(ColorTheme.mono_font())
        self.setStyleSheet(
            f"background:{THEME['bg_canvas']}; color:{THEME['ink']}; border:1px solid {THEME['border']};"
        )
        self.anchorClicked.connect(self._on_anchor)

        # coalesce bursts of ledger signals into one rebuild
        self._refresh_timer = QtCore.QTimer(self)
        self._refresh_timer.setSingleShot(True)
        self._refresh_timer.setInterval(30)
        self._refresh_timer.timeout.connect(self.refresh)
        for signal in (ledger.groupsChanged, ledger.sessionsChanged, ledger.logChanged):
            signal.connect(self._refresh_timer.start)

    def refresh(self) -> None:
        bar = self.verticalScrollBar()
        at_bottom = bar.value() >= bar.maximum() - 4
        self.setHtml("".join(render_entry(e) for e in self._entries()))
        if at_bottom:
            self.moveCursor(QtGui.QTextCursor.MoveOperation.End)
            bar.setValue(bar.maximum())

    def _on_anchor(self, url: QtCore.QUrl) -> None:
        action, _, record_id = url.toString().partition(":")
        if record_id:
            self.entryActionRequested.emit(action, record_id)


# -------------------- widgets/console_output.py (end)
