"""
Wren utilities module.
"""

from src.utils.config import get_settings, reset_settings
from src.utils.logging import (
    LogContext,
    configure_logging,
    ensure_logging_configured,
    get_logger,
)

__all__ = [
    # Config
    "get_settings",
    "reset_settings",
    # Logging
    "get_logger",
    "configure_logging",
    "ensure_logging_configured",
    "LogContext",
]
