# widgets/__init__.py
"""
Expose the custom widgets used by the QuantCanvas console window.
"""
from .connection_icon import ConnectionIcon
from .console_output import ConsoleOutput
from .mode_pills import ModePillButton, ModePills
from .visual_output import VisualOutput
