"""
Browser stealth utilities for Wren.

Every browsing context gets a self-consistent fingerprint bundle:
- User agent drawn from a Chromium desktop pool (the driven browser is Chromium)
- Accept-Language and matching navigator.languages
- navigator.platform matching the user agent's OS
- navigator.plugins of a plausible length
- Fixed desktop viewport

All randomness goes through an injected random.Random so that profile
selection and pacing delays are reproducible under a seed.
"""

import json
import os
import random
from dataclasses import dataclass, field
from string import Template
from typing import Any

from src.utils.config import StealthConfig, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Pools
# =============================================================================

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/129.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36 Edg/130.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
)

ACCEPT_LANGUAGES: tuple[str, ...] = (
    "en-US,en;q=0.9",
    "en-US,en;q=0.9,es;q=0.8",
    "en-GB,en;q=0.9,en-US;q=0.8",
)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

DEFAULT_VIEWPORT: tuple[int, int] = (1920, 1080)


# =============================================================================
# Stealth JavaScript Injection
# =============================================================================

# Runs before any page script. Placeholders: plugin_count, languages, platform.
STEALTH_JS_TEMPLATE = Template("""
(() => {
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
        configurable: true
    });

    const automationProps = [
        '__webdriver_script_fn',
        '__driver_evaluate',
        '__webdriver_evaluate',
        '__selenium_evaluate',
        '__driver_unwrapped',
        '__webdriver_unwrapped',
        '__selenium_unwrapped'
    ];
    for (const prop of automationProps) {
        try {
            delete navigator[prop];
        } catch (e) {}
    }

    const basePlugins = [
        { name: 'PDF Viewer', filename: 'internal-pdf-viewer' },
        { name: 'Chrome PDF Viewer', filename: 'internal-pdf-viewer' },
        { name: 'Chromium PDF Viewer', filename: 'internal-pdf-viewer' },
        { name: 'Microsoft Edge PDF Viewer', filename: 'internal-pdf-viewer' },
        { name: 'WebKit built-in PDF', filename: 'internal-pdf-viewer' },
        { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' },
        { name: 'Native Client', filename: 'internal-nacl-plugin' },
        { name: 'Widevine Content Decryption Module', filename: 'widevinecdmadapter.dll' }
    ];
    Object.defineProperty(navigator, 'plugins', {
        get: () => {
            const plugins = Array.from(
                { length: $plugin_count },
                (_, i) => basePlugins[i % basePlugins.length]
            );
            plugins.item = (i) => plugins[i];
            plugins.namedItem = (name) => plugins.find(p => p.name === name);
            plugins.refresh = () => {};
            return plugins;
        },
        configurable: true
    });

    Object.defineProperty(navigator, 'languages', {
        get: () => $languages,
        configurable: true
    });

    Object.defineProperty(navigator, 'platform', {
        get: () => $platform,
        configurable: true
    });

    const originalQuery = navigator.permissions?.query?.bind(navigator.permissions);
    if (originalQuery) {
        navigator.permissions.query = (parameters) => {
            if (parameters.name === 'notifications') {
                return Promise.resolve({ state: Notification.permission });
            }
            return originalQuery(parameters);
        };
    }

    window.chrome = window.chrome || {};
    window.chrome.runtime = window.chrome.runtime || {};
    window.chrome.loadTimes = window.chrome.loadTimes || function() { return {}; };
    window.chrome.csi = window.chrome.csi || function() { return {}; };

    delete window.__playwright;
    delete window.__puppeteer;
})();
""")


def build_stealth_script(plugin_count: int, languages: list[str], platform: str) -> str:
    """Render the init script for one profile.

    Args:
        plugin_count: Length reported by navigator.plugins.
        languages: Value reported by navigator.languages.
        platform: Value reported by navigator.platform.

    Returns:
        JavaScript source.
    """
    return STEALTH_JS_TEMPLATE.substitute(
        plugin_count=int(plugin_count),
        languages=json.dumps(list(languages)),
        platform=json.dumps(platform),
    )


# =============================================================================
# Pure selection helpers
# =============================================================================


def pick_user_agent(rng: random.Random, pool: tuple[str, ...] | list[str] = USER_AGENTS) -> str:
    return rng.choice(pool)


def pick_accept_language(
    rng: random.Random,
    pool: tuple[str, ...] | list[str] = ACCEPT_LANGUAGES,
) -> str:
    return rng.choice(pool)


def pick_plugin_count(rng: random.Random, low: int = 3, high: int = 8) -> int:
    """Plugin count in [low, high], inclusive."""
    return rng.randint(low, high)


def pick_delay(rng: random.Random, base_ms: int, jitter_ms: int) -> float:
    """Pacing delay in seconds: base + uniform(0, jitter).

    Args:
        rng: Random source.
        base_ms: Fixed part in milliseconds.
        jitter_ms: Upper bound of the random part in milliseconds.

    Returns:
        Delay in seconds, within [base_ms, base_ms + jitter_ms] / 1000.
    """
    jitter = rng.uniform(0, jitter_ms) if jitter_ms > 0 else 0.0
    return (base_ms + jitter) / 1000.0


def languages_from_accept_language(accept_language: str) -> list[str]:
    """Turn "en-US,en;q=0.9,es;q=0.8" into ["en-US", "en", "es"]."""
    languages = []
    for part in accept_language.split(","):
        tag = part.split(";")[0].strip()
        if tag and tag not in languages:
            languages.append(tag)
    return languages


def platform_for_user_agent(user_agent: str) -> str:
    """navigator.platform value consistent with the user agent's OS."""
    if "Windows" in user_agent:
        return "Win32"
    if "Macintosh" in user_agent or "Mac OS X" in user_agent:
        return "MacIntel"
    return "Linux x86_64"


# =============================================================================
# Profiles
# =============================================================================


@dataclass(frozen=True)
class StealthProfile:
    """Fingerprint bundle applied to one browsing context."""

    user_agent: str
    accept_language: str
    languages: tuple[str, ...]
    platform: str
    plugin_count: int
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    headers: dict[str, str] = field(default_factory=dict)
    init_script: str = ""

    @property
    def viewport_size(self) -> dict[str, int]:
        return {"width": self.viewport[0], "height": self.viewport[1]}

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_agent": self.user_agent,
            "accept_language": self.accept_language,
            "platform": self.platform,
            "plugin_count": self.plugin_count,
            "viewport": self.viewport_size,
        }


class StealthProfileProvider:
    """Builds a fresh StealthProfile per browsing context.

    Example:
        provider = StealthProfileProvider(rng=random.Random(42))
        profile = provider.create_profile()
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        config: StealthConfig | None = None,
        viewport: tuple[int, int] | None = None,
    ):
        self._rng = rng or random.Random()
        self._config = config or get_settings().stealth
        if viewport is None:
            browser = get_settings().browser
            viewport = (browser.viewport_width, browser.viewport_height)
        self._viewport = viewport
        self._user_agents = tuple(self._config.user_agents) or USER_AGENTS
        self._accept_languages = tuple(self._config.accept_languages) or ACCEPT_LANGUAGES

    @property
    def rng(self) -> random.Random:
        return self._rng

    def create_profile(self) -> StealthProfile:
        user_agent = pick_user_agent(self._rng, self._user_agents)
        accept_language = pick_accept_language(self._rng, self._accept_languages)
        plugin_count = pick_plugin_count(
            self._rng,
            self._config.min_plugin_count,
            self._config.max_plugin_count,
        )
        languages = languages_from_accept_language(accept_language)
        platform = platform_for_user_agent(user_agent)

        headers = {
            "Accept": ACCEPT_HEADER,
            "Accept-Language": accept_language,
            "Accept-Encoding": "gzip, deflate, br",
            "DNT": "1",
            "Upgrade-Insecure-Requests": "1",
        }

        profile = StealthProfile(
            user_agent=user_agent,
            accept_language=accept_language,
            languages=tuple(languages),
            platform=platform,
            plugin_count=plugin_count,
            viewport=self._viewport,
            headers=headers,
            init_script=build_stealth_script(plugin_count, languages, platform),
        )
        logger.debug("Stealth profile created", **profile.to_dict())
        return profile


# =============================================================================
# Launch arguments
# =============================================================================


def sandbox_required() -> bool:
    """Whether Chromium must run with --no-sandbox in this environment.

    Chromium refuses to start its sandbox as root, and most container
    runtimes lack the namespaces it needs.
    """
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        return True
    return os.path.exists("/.dockerenv") or os.path.exists("/run/.containerenv")


def get_stealth_args(
    no_sandbox: bool | None = None,
    viewport: tuple[int, int] = DEFAULT_VIEWPORT,
) -> list[str]:
    """Get Chromium launch arguments.

    Args:
        no_sandbox: Force sandbox off (True) or on (False). None = auto-detect.
        viewport: Window size.

    Returns:
        List of command-line arguments.
    """
    if no_sandbox is None:
        no_sandbox = sandbox_required()

    args = [
        # Hide navigator.webdriver and the automation infobar
        "--disable-blink-features=AutomationControlled",
        "--disable-infobars",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--no-first-run",
        "--disable-default-apps",
        f"--window-size={viewport[0]},{viewport[1]}",
    ]
    if no_sandbox:
        args.insert(0, "--no-sandbox")
    return args
