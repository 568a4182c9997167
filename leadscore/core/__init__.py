# leadscore/core/__init__.py
"""
Core package for configuration, logging, and shared errors.
"""

from leadscore.core.config import Settings, settings
from leadscore.core.logging import bind_run_id, configure_structlog, get_logger

__all__ = [
    "Settings",
    "settings",
    "bind_run_id",
    "configure_structlog",
    "get_logger",
]
