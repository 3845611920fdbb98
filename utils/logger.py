# -------------------- logger (start)
"""
utils/logger.py
Unified logger for the console: handles console + file output with rotation,
respects DEBUG_MODE from config/settings.py, routes structlog events through
the stdlib handlers, and provides a standard get_logger() accessor.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys

import structlog

from config.settings import DEBUG_MODE, LOG_DIR


class SafeRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that keeps writing when rotation fails on Windows.

    Windows file locking can prevent rotation while another process holds the
    log open; in that case the current file keeps growing.
    """

    def doRollover(self) -> None:
        try:
            super().doRollover()
        except PermissionError:
            pass
        except OSError as e:
            if "being used by another process" not in str(e):
                raise


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _init_logger_system() -> None:
    """Initializes global logging handlers (console + rotating file)."""
    if getattr(_init_logger_system, "_initialized", False):
        return  # already initialized

    # QUIET_STARTUP mode: suppress DEBUG logs, only show INFO+
    quiet_startup = os.getenv("QUIET_STARTUP", "0") == "1"
    log_level = logging.INFO if quiet_startup else (logging.DEBUG if DEBUG_MODE else logging.INFO)

    os.makedirs(LOG_DIR, exist_ok=True)
    log_path = os.path.join(LOG_DIR, "console.log")

    fmt = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt)

    # File handler with rotation (always enabled)
    file_handler = SafeRotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8", delay=True)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for h in list(root_logger.handlers):
        h.close()
    root_logger.handlers.clear()

    # Console handler - only in debug mode (and not in quiet mode)
    if DEBUG_MODE and not quiet_startup:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        root_logger.addHandler(console_handler)

    root_logger.addHandler(file_handler)
    _configure_structlog()

    if DEBUG_MODE and not quiet_startup:
        print(f"[Logger] Initialized ({logging.getLevelName(log_level)}) -> {log_path}")

    _init_logger_system._initialized = True


def get_logger(name: str = "quantcanvas") -> logging.Logger:
    """
    Returns a module-scoped logger.
    Example:
        log = get_logger(__name__)
        log.info("Hello from module")
    """
    _init_logger_system()
    return logging.getLogger(name)


def setup_debug_logging(enabled: bool = False) -> None:
    """
    Globally elevate log level to DEBUG if enabled=True.
    Useful for runtime toggles.
    """
    root = logging.getLogger()
    new_level = logging.DEBUG if enabled else logging.INFO
    root.setLevel(new_level)
    for h in root.handlers:
        h.setLevel(new_level)

    if DEBUG_MODE:
        print(f"[Logger] Runtime level set to {logging.getLevelName(new_level)}")


# -------------------- logger (end)
