"""
rebundle.core - Foundation layer for the rebundle CLI.

Exports logging, path helpers and timing utilities.
"""

from rebundle.core.utils import (
    # Logging
    log,
    Logger,
    configure_debug_logging,
    # Constants
    DEFAULT_CONFIG_NAME,
    DEFAULT_VENDOR_DIR,
    # Path utilities
    change_extension,
    is_within,
    get_project_root,
)
from rebundle.core.timing import TimingContext, format_duration, timing_summary

__all__ = [
    # Logging
    "log",
    "Logger",
    "configure_debug_logging",
    # Constants
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_VENDOR_DIR",
    # Path utilities
    "change_extension",
    "is_within",
    "get_project_root",
    # Timing
    "TimingContext",
    "format_duration",
    "timing_summary",
]
