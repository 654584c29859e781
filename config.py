"""
config.py - Runtime configuration for the Website Compliance Auditor.

All settings are read from environment variables ONCE, validated, and
returned as a plain dict. The dict is then handed explicitly to the
acquisition layer; nothing below this module reads os.environ.
"""

import os

from errors import ConfigurationError

# ────────────────────────────────────────────────────────────────────
# DEFAULTS
# ────────────────────────────────────────────────────────────────────

# Remote rendering service (Browserless) WebSocket endpoint.
DEFAULT_BROWSERLESS_ENDPOINT = "wss://chrome.browserless.io"

# How long (ms) to wait for the page to reach network idle.
DEFAULT_NAV_TIMEOUT_MS = 30_000

# Extra wait (ms) after network idle before the captured requests count as final.
DEFAULT_SETTLE_MS = 1_000

# Hard cap (seconds) for one whole audit, enforced by killing the worker process.
DEFAULT_MAX_AUDIT_TIME = 90

# axe-core is cached locally after the first download.
DEFAULT_AXE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                                "assets", "axe.min.js")
DEFAULT_AXE_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.9.1/axe.min.js"

BROWSER_MODES = ("local", "remote")


def _read_int(environ, name, default, minimum=1):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_config(environ=None):
    """
    Build and validate the auditor configuration.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        A dict with the keys browser_mode, browserless_token,
        browserless_endpoint, nav_timeout_ms, settle_ms, max_audit_time,
        axe_path and axe_url.

    Raises:
        ConfigurationError if a value is missing or invalid.
    """
    if environ is None:
        environ = os.environ

    token = environ.get("BROWSERLESS_TOKEN", "").strip() or None

    # Without an explicit mode, a configured token means "use the service".
    mode = environ.get("BROWSER_MODE", "").strip().lower()
    if not mode:
        mode = "remote" if token else "local"
    if mode not in BROWSER_MODES:
        raise ConfigurationError(
            f"BROWSER_MODE must be one of {', '.join(BROWSER_MODES)}, got {mode!r}"
        )
    if mode == "remote" and not token:
        raise ConfigurationError(
            "BROWSERLESS_TOKEN is not set (required when BROWSER_MODE=remote)"
        )

    endpoint = environ.get("BROWSERLESS_ENDPOINT", "").strip() or DEFAULT_BROWSERLESS_ENDPOINT
    if not endpoint.startswith(("ws://", "wss://")):
        raise ConfigurationError(
            f"BROWSERLESS_ENDPOINT must be a ws:// or wss:// URL, got {endpoint!r}"
        )

    return {
        "browser_mode": mode,
        "browserless_token": token,
        "browserless_endpoint": endpoint.rstrip("/"),
        "nav_timeout_ms": _read_int(environ, "NAV_TIMEOUT_MS", DEFAULT_NAV_TIMEOUT_MS),
        "settle_ms": _read_int(environ, "SETTLE_MS", DEFAULT_SETTLE_MS, minimum=0),
        "max_audit_time": _read_int(environ, "MAX_AUDIT_TIME", DEFAULT_MAX_AUDIT_TIME),
        "axe_path": environ.get("AXE_PATH", "").strip() or DEFAULT_AXE_PATH,
        "axe_url": environ.get("AXE_URL", "").strip() or DEFAULT_AXE_URL,
    }


def describe_config(config):
    """One-line description of a config, safe to print (no token)."""
    if config["browser_mode"] == "remote":
        target = f"remote ({config['browserless_endpoint']})"
    else:
        target = "local Chromium"
    return (f"browser={target}, nav_timeout={config['nav_timeout_ms']}ms, "
            f"max_audit_time={config['max_audit_time']}s")
