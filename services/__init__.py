"""
services/__init__.py

Package export surface for services layer.
Exposes commonly-used classes and functions for import convenience.
"""

from __future__ import annotations

from .console_export import GroupExport, SessionExport, build_group_export, build_session_export, to_csv, write_export
from .engine_lifecycle import LocalKdbEngine, RESET_COMMAND
