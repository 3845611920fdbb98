"""
widgets/visual_output.py

Visualization pane for the latest display-worthy value.

Each value is classified once and routed to one page of a stacked widget:
tables to a QTableWidget (plus a line plot of the numeric columns), numeric
series to a pyqtgraph plot, matrices to a pyqtgraph ImageView (stacks play as
frames) and everything else to monospaced text.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
from PyQt6 import QtCore, QtWidgets
import pyqtgraph as pg
import structlog

from config.theme import THEME, ColorTheme
from core.result_classifier import Classification, ImageData, Shape, TableData, classify, is_number


log = structlog.get_logger(__name__)

TABLE_ROW_LIMIT = 500
FRAME_RATE = 10


class VisualOutput(QtWidgets.QStackedWidget):
    """Stacked text / table / plot / image pages driven by set_value()."""

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.current: Optional[Classification] = None
        pg.setConfigOptions(antialias=True)
        self._build_pages()
        self.clear()

    # -------------------- pages (start)
    def _build_pages(self) -> None:
        self._text = QtWidgets.QPlainTextEdit()
        self._text.setReadOnly(True)
        self._text.setFont(ColorTheme.mono_font())
        self._text.setStyleSheet(
            f"background:{THEME['bg_panel']}; color:{THEME['ink']}; border:1px solid {THEME['border']};"
        )

        self._table_page = QtWidgets.QSplitter(QtCore.Qt.Orientation.Vertical)
        self._table = QtWidgets.QTableWidget()
        self._table.setEditTriggers(QtWidgets.QAbstractItemView.EditTrigger.NoEditTriggers)
        self._table_plot = self._make_plot()
        self._table_page.addWidget(self._table)
        self._table_page.addWidget(self._table_plot)

        self._plot = self._make_plot()

        self._image = pg.ImageView()
        self._image.ui.roiBtn.hide()
        self._image.ui.menuBtn.hide()

        for page in (self._text, self._table_page, self._plot, self._image):
            self.addWidget(page)

    @staticmethod
    def _make_plot() -> pg.PlotWidget:
        plot = pg.PlotWidget()
        plot.setBackground(THEME["graph_bg"])
        plot.setMenuEnabled(False)
        plot.getPlotItem().showGrid(x=True, y=True, alpha=0.15)
        return plot

    # -------------------- pages (end)

    @property
    def shape(self) -> Optional[Shape]:
        return self.current.shape if self.current is not None else None

    def clear(self) -> None:
        self.current = None
        self._image.play(0)
        self._text.setPlainText("")
        self._text.setPlaceholderText("Structured results appear here")
        self.setCurrentWidget(self._text)

    def set_value(self, value: Any) -> None:
        """Show ``value``; None clears the pane."""
        if value is None:
            self.clear()
            return
        self.current = classify(value)
        self._image.play(0)
        log.debug("visual.render", shape=self.current.shape.value)

        if self.current.shape is Shape.TABLE:
            self._show_table(self.current.table)
        elif self.current.shape is Shape.NUMERIC_SERIES:
            self._show_series(self.current.series)
        elif self.current.shape is Shape.MATRIX_IMAGE:
            self._show_image(self.current.image)
        else:
            self._text.setPlainText(self.current.text or "")
            self.setCurrentWidget(self._text)

    # -------------------- renderers (start)
    def _show_table(self, table: TableData) -> None:
        rows = table.rows[:TABLE_ROW_LIMIT]
        self._table.clear()
        self._table.setColumnCount(len(table.columns))
        self._table.setRowCount(len(rows))
        self._table.setHorizontalHeaderLabels([str(c) for c in table.columns])
        grid = table.as_text_grid()[1 : len(rows) + 1]
        for r, row in enumerate(grid):
            for c, text in enumerate(row):
                self._table.setItem(r, c, QtWidgets.QTableWidgetItem(text))

        self._table_plot.clear()
        numeric = table.numeric_columns()
        palette = THEME["graph_palette"]
        for i, column in enumerate(numeric):
            ys = np.array(
                [v if is_number(v) else np.nan for v in table.column_values(column)], dtype=np.float64
            )
            self._table_plot.plot(ys, pen=pg.mkPen(palette[i % len(palette)], width=2), name=str(column))
        self._table_plot.setVisible(bool(numeric))
        self.setCurrentWidget(self._table_page)

    def _show_series(self, series: np.ndarray) -> None:
        self._plot.clear()
        self._plot.plot(series, pen=pg.mkPen(THEME["graph_line"], width=2))
        self.setCurrentWidget(self._plot)

    def _show_image(self, image: ImageData) -> None:
        if image.color:
            axes = {"t": 0, "y": 1, "x": 2, "c": 3}
        else:
            axes = {"t": 0, "y": 1, "x": 2}
        self._image.setImage(image.pixels, axes=axes, autoLevels=False, levels=(0, 255))
        self.setCurrentWidget(self._image)
        if image.frames > 1:
            self._image.play(FRAME_RATE)

    # -------------------- renderers (end)
