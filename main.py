import sys

from PyQt6 import QtCore, QtWidgets

from config.settings import DEBUG_MODE, KDB_PORT
from config.theme import THEME, ColorTheme
from core.kdb_console import KdbConsole
from services.engine_lifecycle import LocalKdbEngine
from utils.logger import get_logger, setup_debug_logging
from widgets.console_window import ConsoleWindow


log = get_logger("main")


def main():
    setup_debug_logging(DEBUG_MODE)

    app = QtWidgets.QApplication(sys.argv)
    app.setFont(ColorTheme.qfont(int(THEME["font_weight"]), int(THEME["font_size"])))

    engine = LocalKdbEngine(port=KDB_PORT)
    console = KdbConsole(engine=engine)
    if not console.initialize():
        log.error("console initialization failed")

    win = ConsoleWindow(console)
    win.show()
    log.info("console window shown, engine status=%s", engine.get_status())

    # connect once the event loop is running so state changes reach the window
    QtCore.QTimer.singleShot(0, console.auto_connect)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
