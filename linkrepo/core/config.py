"""
Configuration helpers for Link Repository.

Design overview
---------------
All persistent data (groups, subgroups, files) and all authentication
state live in the hosted backend. The only thing stored on this
machine is how to reach that backend plus a few client-side policies.

These settings live in a per-user "bootstrap" directory:

    ~/.linkrepo/config.json

A typical file looks like::

    {
      "anon_key": "eyJhbGciOi...",
      "backend_url": "https://abcd.supabase.co",
      "last_email": "someone@example.com",
      "request_timeout": 30,
      "sign_out_on_hide": true
    }

``backend_url`` and ``anon_key`` may also be given through the
environment variables ``LINKREPO_BACKEND_URL`` and
``LINKREPO_ANON_KEY``, which take precedence over the file. This makes
it possible to point a development build at a different backend without
touching the saved configuration.

On a clean startup the backend URL and key are unset; the GUI must
prompt for them before attempting to sign in. The rest of the
application should always obtain settings through the helpers in this
module.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Paths and constants
# ---------------------------------------------------------------------------

# Name of the per-user bootstrap directory under the home directory.
APP_DIR_NAME = ".linkrepo"

# Name of the JSON configuration file inside the bootstrap directory.
CONFIG_FILENAME = "config.json"

# Environment overrides for the backend connection.
ENV_BACKEND_URL = "LINKREPO_BACKEND_URL"
ENV_ANON_KEY = "LINKREPO_ANON_KEY"

# Sign out whenever the main window is hidden or the app quits.
DEFAULT_SIGN_OUT_ON_HIDE = True

# Seconds before a backend request is abandoned and treated as a
# connectivity failure.
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class BackendConfig:
    """Effective settings used to build the remote client.

    Attributes:
        backend_url: Base URL of the hosted backend, without trailing
            slash (e.g. "https://abcd.supabase.co").
        anon_key: Public API key sent with every request.
        sign_out_on_hide: Whether hiding the window or quitting signs
            the user out.
        request_timeout: Per-request timeout in seconds.
    """

    backend_url: Optional[str]
    anon_key: Optional[str]
    sign_out_on_hide: bool = DEFAULT_SIGN_OUT_ON_HIDE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def is_complete(self) -> bool:
        """True when both the backend URL and the key are known."""
        return bool(self.backend_url) and bool(self.anon_key)


# ---------------------------------------------------------------------------
# Low-level helpers for bootstrap directory and config.json
# ---------------------------------------------------------------------------


def get_bootstrap_dir() -> Path:
    """Return the per-user bootstrap directory (``~/.linkrepo``)."""

    return Path.home() / APP_DIR_NAME


def get_config_path() -> Path:
    """Return the full path to the JSON configuration file."""

    return get_bootstrap_dir() / CONFIG_FILENAME


def _load_raw_config() -> Dict[str, Any]:
    """Load the raw configuration dictionary from disk.

    If the file does not exist or cannot be parsed, an empty dictionary
    is returned. Higher-level helpers are responsible for applying
    defaults.

    Returns:
        Parsed configuration dictionary, or an empty dict on error.
    """

    path = get_config_path()
    if not path.exists():
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        raw = json.loads(text)
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}

    if not isinstance(raw, dict):
        return {}
    return raw


def _save_raw_config(cfg: Dict[str, Any]) -> None:
    """Atomically write the given configuration dictionary to disk."""

    bootstrap = get_bootstrap_dir()
    bootstrap.mkdir(parents=True, exist_ok=True)

    path = get_config_path()
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(cfg, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def _ensure_default_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in the keys every configuration must have.

    ``backend_url`` and ``anon_key`` are deliberately left as ``None``
    when unset so that the GUI can prompt for them on first run.
    """

    cfg = dict(raw) if raw is not None else {}

    cfg.setdefault("backend_url", None)
    cfg.setdefault("anon_key", None)

    if not isinstance(cfg.get("sign_out_on_hide"), bool):
        cfg["sign_out_on_hide"] = DEFAULT_SIGN_OUT_ON_HIDE

    timeout = cfg.get("request_timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        cfg["request_timeout"] = DEFAULT_REQUEST_TIMEOUT

    return cfg


# ---------------------------------------------------------------------------
# High-level configuration API
# ---------------------------------------------------------------------------


def load_config() -> Dict[str, Any]:
    """Load the application configuration, applying defaults as needed.

    If the defaulting logic added or modified keys, the result is
    written back so that subsequent runs see a consistent file.
    """

    raw = _load_raw_config()
    cfg = _ensure_default_config(raw)
    if cfg != raw:
        _save_raw_config(cfg)
    return cfg


def get_backend_config() -> BackendConfig:
    """Return the effective backend settings, with env overrides applied."""

    cfg = load_config()
    url = os.environ.get(ENV_BACKEND_URL) or cfg.get("backend_url")
    key = os.environ.get(ENV_ANON_KEY) or cfg.get("anon_key")
    if url:
        url = url.strip().rstrip("/")
    return BackendConfig(
        backend_url=url or None,
        anon_key=key or None,
        sign_out_on_hide=cfg["sign_out_on_hide"],
        request_timeout=float(cfg["request_timeout"]),
    )


def set_backend(url: str, anon_key: str) -> None:
    """Persist the backend URL and public key.

    Args:
        url: Base URL including scheme, e.g. "https://abcd.supabase.co".
        anon_key: Public API key for that backend.
    """
    cfg = load_config()
    cfg["backend_url"] = url.strip().rstrip("/")
    cfg["anon_key"] = anon_key.strip()
    _save_raw_config(cfg)


def get_last_email() -> Optional[str]:
    """Return the email address used for the last successful sign-in."""
    return load_config().get("last_email") or None


def set_last_email(email: str) -> None:
    cfg = load_config()
    cfg["last_email"] = email
    _save_raw_config(cfg)
