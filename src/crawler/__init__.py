"""
Wren Crawler Module.

Browser process lifecycle, isolated browsing contexts and stealth profiles.
"""

from src.crawler.stealth import (
    StealthProfile,
    StealthProfileProvider,
    get_stealth_args,
    pick_delay,
)
from src.crawler.driver import (
    BrowserAutomationDriver,
    BrowserBackend,
    PlaywrightBackend,
    ResultElement,
    create_backend,
)
from src.crawler.browser_session import (
    BrowserSessionManager,
    SessionState,
    get_browser_session_manager,
    reset_browser_session_manager,
    shutdown_browser_session_manager,
)

__all__ = [
    # Stealth
    "StealthProfile",
    "StealthProfileProvider",
    "get_stealth_args",
    "pick_delay",
    # Driver
    "BrowserAutomationDriver",
    "BrowserBackend",
    "PlaywrightBackend",
    "ResultElement",
    "create_backend",
    # Session
    "BrowserSessionManager",
    "SessionState",
    "get_browser_session_manager",
    "reset_browser_session_manager",
    "shutdown_browser_session_manager",
]
