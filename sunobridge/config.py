"""
Configuration management for SunoBridge.
Handles loading, saving, and normalizing configuration.

Values come from config.json (path switchable for tests) with defaults applied, then environment
variables override them so a container can be configured without a file.
"""

import json
import os
from typing import Optional

from . import constants
from .console import debug_print


_current_config_file: str = constants.CONFIG_FILE

# Environment variable -> config key
_ENV_OVERRIDES = {
    "SUNO_COOKIE": "suno_cookie",
    "TWOCAPTCHA_KEY": "twocaptcha_key",
    "BROWSER": "browser",
    "BROWSER_HEADLESS": "browser_headless",
    "BROWSER_DISABLE_GPU": "browser_disable_gpu",
    "BROWSER_LOCALE": "browser_locale",
    "CAPTCHA_TEST_PROMPT": "captcha_test_prompt",
}

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


def get_config_file() -> str:
    """Get the current config file path."""
    return _current_config_file


def set_config_file(path: str) -> None:
    """Set the config file path (useful for tests)."""
    global _current_config_file
    _current_config_file = path


def get_config() -> dict:
    """
    Load configuration from file with defaults.
    Returns a dictionary with all configuration values.
    """
    try:
        with open(_current_config_file, "r") as f:
            config = json.load(f)
    except FileNotFoundError:
        config = {}
    except json.JSONDecodeError as e:
        debug_print(f"⚠️  Config file error: {e}, using defaults")
        config = {}

    if not isinstance(config, dict):
        config = {}

    _apply_config_defaults(config)
    _apply_env_overrides(config)
    return config


def _apply_config_defaults(config: dict) -> None:
    """Apply default values to config dictionary."""
    config.setdefault("suno_cookie", "")
    config.setdefault("twocaptcha_key", "")
    config.setdefault("browser", constants.DEFAULT_BROWSER)
    config.setdefault("browser_headless", True)
    config.setdefault("browser_disable_gpu", False)
    config.setdefault("browser_locale", constants.DEFAULT_BROWSER_LOCALE)
    config.setdefault("user_agent", "")
    config.setdefault("captcha_test_prompt", constants.DEFAULT_CAPTCHA_TEST_PROMPT)
    config.setdefault("captcha_drag_instructions_image", "")
    config.setdefault("captcha_check_before_generate", False)
    config.setdefault("session_cache_ttl_seconds", constants.DEFAULT_SESSION_CACHE_TTL_SECONDS)
    config.setdefault("session_cache_max_entries", constants.DEFAULT_SESSION_CACHE_MAX_ENTRIES)

    timeouts = config.get("timeouts")
    if not isinstance(timeouts, dict):
        timeouts = {}
        config["timeouts"] = timeouts
    for name, default in constants.DEFAULT_TIMEOUTS.items():
        timeouts.setdefault(name, default)


def _apply_env_overrides(config: dict) -> None:
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None and value.strip():
            config[key] = value.strip()

    timeouts = config["timeouts"]
    for name in constants.DEFAULT_TIMEOUTS:
        value = os.environ.get(f"TIMEOUT_{name.upper()}")
        if value is None or not value.strip():
            continue
        try:
            timeouts[name] = float(value)
        except ValueError:
            debug_print(f"⚠️  Ignoring non-numeric TIMEOUT_{name.upper()}={value!r}")


def save_config(config: dict) -> None:
    """Save configuration to file (atomic replace)."""
    try:
        tmp_path = f"{_current_config_file}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(config, f, indent=4)
        os.replace(tmp_path, _current_config_file)
    except OSError as e:
        debug_print(f"❌ Error saving config: {e}")


def parse_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def get_timeouts(config: Optional[dict] = None) -> dict:
    """Return every named timeout as a non-negative float (seconds)."""
    cfg = config or get_config()
    raw = cfg.get("timeouts") if isinstance(cfg.get("timeouts"), dict) else {}
    timeouts: dict[str, float] = {}
    for name, default in constants.DEFAULT_TIMEOUTS.items():
        try:
            value = float(raw.get(name, default))
        except (TypeError, ValueError):
            value = float(default)
        timeouts[name] = max(0.0, value)
    if timeouts["keep_alive_sleep_max"] < timeouts["keep_alive_sleep_min"]:
        timeouts["keep_alive_sleep_max"] = timeouts["keep_alive_sleep_min"]
    if timeouts["audio_poll_delay_max"] < timeouts["audio_poll_delay_min"]:
        timeouts["audio_poll_delay_max"] = timeouts["audio_poll_delay_min"]
    return timeouts


def get_browser_settings(config: Optional[dict] = None) -> dict:
    """Normalize the browser-related part of the configuration."""
    cfg = config or get_config()
    engine = str(cfg.get("browser") or "").strip().lower()
    if engine not in constants.SUPPORTED_BROWSERS:
        engine = constants.DEFAULT_BROWSER
    locale = str(cfg.get("browser_locale") or "").strip() or None
    user_agent = str(cfg.get("user_agent") or "").strip() or constants.DEFAULT_USER_AGENT
    return {
        "engine": engine,
        "headless": parse_bool(cfg.get("browser_headless"), default=True),
        "disable_gpu": parse_bool(cfg.get("browser_disable_gpu"), default=False),
        "locale": locale,
        "user_agent": user_agent,
    }
