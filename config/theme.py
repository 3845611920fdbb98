# -------------------- config/theme.py (start)
# File: config/theme.py
# Console theme tokens. Widgets read colors and fonts from THEME and build
# their QSS from it; nothing else holds hard-coded colors.

from __future__ import annotations

from PyQt6 import QtGui


THEME: dict[str, object] = {
    # Fonts
    "font_family": "Inter, Segoe UI, sans-serif",
    "mono_font_family": "JetBrains Mono, Consolas, monospace",
    "font_size": 13,
    "font_weight": 500,
    "mono_font_size": 12,
    # Surfaces
    "bg_canvas": "#0B0F19",
    "bg_panel": "#111827",
    "bg_input": "#0F172A",
    "bg_hover": "#1F2937",
    "border": "#374151",
    "border_focus": "#60A5FA",
    # Text
    "ink": "#E5E7EB",
    "fg_muted": "#9CA3AF",
    "text_tertiary": "rgba(255,255,255,0.4)",
    # Entry kinds
    "query_fg": "#93C5FD",
    "response_fg": "#E5E7EB",
    "error_fg": "#F87171",
    "system_fg": "#A78BFA",
    "session_fg": "#34D399",
    # Accents
    "accent": "#3B82F6",
    "live_accent": "#22C55E",
    "pointer_accent": "#F59E0B",
    # Pills
    "pill_radius": 12,
    "chip_height": 26,
    "pill_font_size": 12,
    "pill_font_weight": 600,
    "pill_text_active_color": "#FFFFFF",
    "live_dot_fill": "#22C55E",
    "live_dot_border": "#16A34A",
    "live_dot_pulse_ms": 600,
    # Connection indicator
    "conn_status_green": "#22C55E",
    "conn_status_yellow": "#F59E0B",
    "conn_status_red": "#EF4444",
    # Visual pane
    "graph_bg": "#0F0F1A",
    "graph_line": "#60A5FA",
    "graph_palette": ["#60A5FA", "#34D399", "#F59E0B", "#F87171", "#A78BFA", "#F472B6"],
}


class ColorTheme:
    """Font helpers shared by widgets that build QSS from THEME."""

    @staticmethod
    def font_css(weight: int, size: int, family: str | None = None) -> str:
        family = family or str(THEME["font_family"])
        return f"font-family:{family}; font-size:{int(size)}px; font-weight:{int(weight)}"

    @staticmethod
    def qfont(weight: int, size: int, family: str | None = None) -> QtGui.QFont:
        family = family or str(THEME["font_family"]).split(",")[0].strip()
        font = QtGui.QFont(family)
        font.setPixelSize(int(size))
        font.setWeight(QtGui.QFont.Weight(int(weight)))
        return font

    @staticmethod
    def mono_font() -> QtGui.QFont:
        font = ColorTheme.qfont(400, int(THEME["mono_font_size"]), str(THEME["mono_font_family"]).split(",")[0].strip())
        font.setStyleHint(QtGui.QFont.StyleHint.Monospace)
        return font


def entry_color(kind: str) -> str:
    """Foreground color for a console entry kind (query/response/error/system/session)."""
    return str(THEME.get(f"{kind}_fg", THEME["ink"]))


# -------------------- config/theme.py (end)
