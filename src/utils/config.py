"""
Configuration management for Wren.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "wren"
    version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = True
    logs_dir: str = "logs"


class BrowserConfig(BaseModel):
    """Browser configuration.

    One headless browser process is shared by all searches; each search
    runs in its own context (cookies, storage, page).
    """

    model_config = ConfigDict(extra="forbid")

    # "playwright" (default) or "undetected" (undetected-chromedriver / Selenium)
    backend: Literal["playwright", "undetected"] = "playwright"
    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    launch_timeout_ms: int = 30000
    navigation_timeout_ms: int = 30000
    # None = auto-detect (root user or container)
    no_sandbox: bool | None = None
    max_contexts: int = 4
    context_acquire_timeout: float = 30.0
    blocked_resources: list[str] = Field(
        default_factory=lambda: ["**/*.{png,jpg,jpeg,gif,svg,woff,woff2}"]
    )
    # Chrome major version for undetected-chromedriver (None = auto-detect)
    chrome_version: int | None = None


class StealthConfig(BaseModel):
    """Fingerprint configuration for new browsing contexts."""

    model_config = ConfigDict(extra="forbid")

    user_agents: list[str] = Field(default_factory=list)  # empty = built-in pool
    accept_languages: list[str] = Field(default_factory=list)  # empty = built-in pool
    min_plugin_count: int = 3
    max_plugin_count: int = 8


class SearchConfig(BaseModel):
    """Search configuration."""

    model_config = ConfigDict(extra="forbid")

    max_query_length: int = 200
    engine_timeout_seconds: float = 45.0
    selector_timeout_ms: int = 5000
    url_display_max_length: int = 100
    url_suffix_length: int = 40
    word_break_window: int = 1200


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    stealth: StealthConfig = Field(default_factory=StealthConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Cache for local.yaml content, keyed by config directory
_local_overrides_cache: dict[Path, dict[str, Any]] = {}


def _load_local_overrides(config_dir: Path) -> dict[str, Any]:
    """Load local.yaml overrides (cached).

    local.yaml provides unified local overrides for all YAML config files.
    Top-level keys correspond to config file names (without .yaml extension).

    Example local.yaml:
        settings:
          browser:
            headless: false
        engines:
          default_order: [bing, duckduckgo]

    Args:
        config_dir: Configuration directory path.

    Returns:
        Local overrides dictionary (cached after first load).
    """
    if config_dir in _local_overrides_cache:
        return _local_overrides_cache[config_dir]

    local_path = config_dir / "local.yaml"
    overrides: dict[str, Any] = {}
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            overrides = yaml.safe_load(f) or {}

    _local_overrides_cache[config_dir] = overrides
    return overrides


def load_yaml_with_local_override(
    config_dir: Path,
    filename: str,
    section_key: str | None = None,
) -> dict[str, Any]:
    """Load YAML file with local.yaml override support.

    This is the unified loader for all YAML config files.
    It loads the base file, then applies overrides from local.yaml.

    Args:
        config_dir: Configuration directory path.
        filename: YAML filename (e.g., "settings.yaml").
        section_key: Key in local.yaml for overrides.
                     Defaults to filename without extension.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / filename
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_overrides = _load_local_overrides(config_dir)
    if section_key is None:
        section_key = Path(filename).stem  # e.g., "settings.yaml" -> "settings"

    if section_key in local_overrides:
        config = _deep_merge(config, local_overrides[section_key])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with WREN_ and use
    double underscores for nested keys.

    Example:
        WREN_GENERAL__LOG_LEVEL=DEBUG

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "WREN_"

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        key_path = key[len(prefix) :].lower().split("__")
        # WREN_CONFIG_DIR and similar flat switches are not settings
        if len(key_path) < 2:
            continue

        current = config
        for part in key_path[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


def get_config_dir() -> Path:
    """Get the configuration directory (WREN_CONFIG_DIR, default ./config)."""
    return Path(os.environ.get("WREN_CONFIG_DIR", "config"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files (settings.yaml, then local.yaml)
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config = load_yaml_with_local_override(get_config_dir(), "settings.yaml", "settings")
    config = _apply_env_overrides(config)
    return Settings(**config)


def reset_settings() -> None:
    """Drop cached settings and local overrides (for testing)."""
    get_settings.cache_clear()
    _local_overrides_cache.clear()


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at src/utils/config.py
    return Path(__file__).parent.parent.parent
