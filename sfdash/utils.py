"""
Utility functions: config loading, logging setup, and helpers.

Config is resolved once per process by load_config() and handed to every
component as a plain dict:

  defaults  →  config.yaml  →  .env  →  process environment

Timeouts are milliseconds throughout and are pre-scaled by
timeout_multiplier, so callers read them as-is. Poll/settle intervals
are not scaled.
"""

import os
import re
import time
import logging
from contextlib import contextmanager
from datetime import datetime

import yaml
from dotenv import load_dotenv
from playwright.sync_api import Error as PlaywrightError

from sfdash.errors import ConfigError


ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_DIR = os.path.join(ROOT_DIR, "logs")
SCREENSHOT_DIR = os.path.join(LOG_DIR, "screenshots")
HTMLDUMP_DIR   = os.path.join(LOG_DIR, "htmldumps")

LOGGER_NAME = "sfdash"

DEFAULT_TABS = ["Monarch", "Tadpole", "Bogart", "Bluebird"]

# canonical label first, alias spellings after
DEFAULT_METRICS = [
    ["Total Rows Imported"],
    ["Total Unique PAX"],
    ["Rejected on Ingest (Duplicate/Repeats)", "Total Rejected (Duplicates/Repeats)"],
    ["P0 PAX Referred to DHS", "P0 PAX Refered to DHS"],
    ["P2 PAX Initial Outreach"],
    ["P3 PAX Processing"],
    ["P4 PAX Plane Ticketing"],
    ["P5 PAX Departure"],
    ["P6 PAX Departed"],
    ["P7 Resettlement Stipend Paid"],
]

# (config key, env var, default)
_TIMEOUTS = [
    ("frame_timeout",  "PW_FRAME_TIMEOUT",  30_000),
    ("tab_timeout",    "PW_TAB_TIMEOUT",    15_000),
    ("nav_timeout",    "PW_NAV_TIMEOUT",    60_000),
    ("metric_timeout", "PW_METRIC_TIMEOUT", 45_000),
]

# short waits between polls / re-layouts; never scaled
_INTERVALS = [
    ("poll_interval",    250),
    ("settle_ms",        300),
    ("scroll_settle_ms", 120),
]

_ENV_KEYS = {
    "login_url":     ("SF_LOGIN_URL",),
    "home_url":      ("SF_HOME_URL",),
    "username":      ("SF_USER", "SF_USERNAME"),
    "password":      ("SF_PWD", "SF_PASSWORD"),
    "dashboard_url": ("SF_DASHBOARD_URL",),
    "app_title":     ("APP_TITLE",),
    "setup_url":     ("SF_SETUP_URL",),
    "record_id":     ("SF_QAIS_USER_ID",),
}

REQUIRED_KEYS = ["login_url", "home_url", "username", "password"]
_URL_KEYS = ("login_url", "home_url", "dashboard_url", "setup_url")


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure and return the project logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    os.makedirs(LOG_DIR, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(LOG_DIR, f"run_{timestamp}.log")

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch_fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", datefmt="%H:%M:%S")
    ch.setFormatter(ch_fmt)

    # File handler
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh_fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(name)s — %(message)s")
    fh.setFormatter(fh_fmt)

    logger.addHandler(ch)
    logger.addHandler(fh)

    logger.info(f"Log file: {log_file}")
    return logger


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_int(key: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer (ms), got: {value!r}") from None


def load_config(config_path: str = None, env: dict = None, dotenv: bool = True) -> dict:
    """
    Load and validate the run configuration.

    Args:
        config_path: YAML file; defaults to ./config.yaml when it exists.
        env: Mapping used instead of os.environ (tests pass their own).
        dotenv: Read a .env file into the environment first.

    Raises ConfigError listing every missing required key.
    """
    if config_path is None:
        candidate = os.path.join(ROOT_DIR, "config.yaml")
        config_path = candidate if os.path.exists(candidate) else None
    elif not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    config: dict = {}
    if config_path:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        if not isinstance(config, dict):
            raise ConfigError(f"Config file must hold a mapping: {config_path}")

    if env is None:
        if dotenv:
            # does not override variables already exported
            load_dotenv(os.path.join(ROOT_DIR, ".env"))
        env = os.environ

    # ── Environment overlay ─────────────────────────────────────────
    for key, names in _ENV_KEYS.items():
        for name in names:
            if env.get(name):
                config[key] = env[name]
                break

    for key, env_name, _default in _TIMEOUTS:
        if env_name and env.get(env_name):
            config[key] = env[env_name]
    if env.get("PW_TIMEOUT_MULTIPLIER"):
        try:
            config["timeout_multiplier"] = float(env["PW_TIMEOUT_MULTIPLIER"])
        except ValueError:
            raise ConfigError(
                f"PW_TIMEOUT_MULTIPLIER must be a number, got: {env['PW_TIMEOUT_MULTIPLIER']!r}"
            ) from None
    if env.get("PW_HEADLESS"):
        config["headless"] = _env_bool(env["PW_HEADLESS"])

    # ── Required keys ───────────────────────────────────────────────
    missing = [k for k in REQUIRED_KEYS if not config.get(k)]
    if missing:
        raise ConfigError(
            "Missing required configuration: "
            + ", ".join(f"{k} ({'/'.join(_ENV_KEYS[k])})" for k in missing)
        )

    for key in _URL_KEYS:
        if config.get(key):
            config[key] = str(config[key]).rstrip("/")

    # ── Defaults ────────────────────────────────────────────────────
    config.setdefault("app_title", "CSRO Dashboard")
    config.setdefault("dashboard_url", None)
    config.setdefault("setup_url", None)
    config.setdefault("record_id", None)
    config.setdefault("headless", False)
    config.setdefault("tabs", list(DEFAULT_TABS))
    config.setdefault("metrics", [list(v) for v in DEFAULT_METRICS])
    state_dir = str(config.get("state_dir") or ROOT_DIR)
    config["state_dir"] = state_dir if os.path.isabs(state_dir) else os.path.join(ROOT_DIR, state_dir)
    config.setdefault("scroll_step", 800)
    config.setdefault("max_scrolls", 40)
    config.setdefault("session_max_age_hours", 8)

    multiplier = config.setdefault("timeout_multiplier", 1.0)
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)) or multiplier < 0.1:
        raise ConfigError(
            f"timeout_multiplier must be a number >= 0.1, got: {multiplier!r}"
        )

    for key, _env_name, default in _TIMEOUTS:
        raw = _as_int(key, config.get(key, default))
        if raw < 0:
            raise ConfigError(f"{key} must be >= 0, got: {raw}")
        config[key] = scaled_timeout(raw, multiplier)

    for key, default in _INTERVALS:
        raw = _as_int(key, config.get(key, default))
        if raw < 0:
            raise ConfigError(f"{key} must be >= 0, got: {raw}")
        config[key] = raw

    for key in ("scroll_step", "max_scrolls"):
        value = _as_int(key, config[key])
        if value < 1:
            raise ConfigError(f"{key} must be >= 1, got: {value}")
        config[key] = value

    unknown = [t for t in config["tabs"] if not isinstance(t, str) or not t.strip()]
    if unknown:
        raise ConfigError(f"tabs must be non-empty names, got: {config['tabs']!r}")

    return config


def scaled_timeout(base_ms: int, multiplier: float) -> int:
    """
    Scale a timeout by the configured multiplier, rounded up to 100ms.

    Examples:
        scaled_timeout(30_000, 1.0) → 30_000
        scaled_timeout(250, 1.5)    → 400
    """
    scaled = int(base_ms * multiplier)
    return ((scaled + 99) // 100) * 100


def get_session_path(config: dict, role: str = "default") -> str:
    """Return the storage-state snapshot path for a logical role."""
    state_dir = config.get("state_dir", ROOT_DIR)
    name = "state.json" if role == "default" else f"state-{role.lower()}.json"
    return os.path.join(state_dir, name)


# ── Polling ──────────────────────────────────────────────────────────────

def poll_until(fn, *, timeout_ms: int, interval_ms: int = 250, description: str = "condition", wait=None):
    """
    Call fn until it returns a truthy value or the deadline passes.

    wait(ms) pauses between attempts; pass page.wait_for_timeout while a
    page is open so Playwright keeps dispatching events.

    Exceptions raised by fn count as a miss; the last one is chained onto the
    TimeoutError raised when the deadline expires.
    """
    logger = logging.getLogger(LOGGER_NAME)
    deadline = time.monotonic() + timeout_ms / 1000.0
    last_error = None
    attempt = 0
    while True:
        attempt += 1
        try:
            result = fn()
            if result:
                return result
        except Exception as e:
            last_error = e
            logger.debug(f"  poll '{description}' attempt {attempt} raised: {e}")
        if time.monotonic() >= deadline:
            break
        if wait is not None:
            wait(interval_ms)
        else:
            time.sleep(interval_ms / 1000.0)

    raise TimeoutError(f"Timed out after {timeout_ms}ms waiting for {description}") from last_error


# ── Step trail ───────────────────────────────────────────────────────────

@contextmanager
def step(title: str):
    """Log a labelled step; failures are logged and re-raised."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.info(f"▶  {title}")
    try:
        yield
    except Exception:
        logger.error(f"❌ {title}")
        raise
    logger.info(f"✅ {title}")


# ── Diagnostics ──────────────────────────────────────────────────────────

def capture_diagnostics(page, label: str = "error") -> str | None:
    """
    Save a screenshot under logs/screenshots, or an HTML dump under
    logs/htmldumps when the page cannot be rendered, tagged with label.

    Returns the saved path, or None when the page is gone entirely.
    """
    logger = logging.getLogger(LOGGER_NAME)
    stem = datetime.now().strftime("%Y%m%d_%H%M%S_") + re.sub(r"[^\w\-]", "_", label)[:80]

    if page.is_closed():
        logger.warning(f"No diagnostics for '{label}': page already closed")
        return None
    logger.debug(f"[diag] {label} at {page.url}")

    shot = os.path.join(SCREENSHOT_DIR, f"{stem}.png")
    try:
        os.makedirs(SCREENSHOT_DIR, exist_ok=True)
        page.screenshot(path=shot, timeout=5_000)
        logger.info(f"📸 Screenshot saved: {shot}")
        return shot
    except (PlaywrightError, OSError) as e:
        logger.debug(f"Screenshot failed ({e}); dumping HTML instead")

    dump = os.path.join(HTMLDUMP_DIR, f"{stem}.html")
    try:
        markup = page.content()
        os.makedirs(HTMLDUMP_DIR, exist_ok=True)
        with open(dump, "w", encoding="utf-8") as f:
            f.write(markup)
    except (PlaywrightError, OSError) as e:
        logger.warning(f"HTML dump failed for '{label}': {e}")
        return None
    logger.info(f"📄 HTML dump saved: {dump}")
    return dump
