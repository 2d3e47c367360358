"""API key lookup from the environment or the per-user config file."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .config import API_KEY_ENV_VAR

logger = logging.getLogger("securecode")


def get_config_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or str(Path.home())
        return Path(base) / "SecureCode"
    return Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "securecode"


def config_path() -> Path:
    return get_config_dir() / "config.json"


def load_saved_api_key() -> str:
    cfg_file = config_path()
    if not cfg_file.is_file():
        return ""
    try:
        data = json.loads(cfg_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", cfg_file, exc)
        return ""
    if not isinstance(data, dict):
        return ""
    return str(data.get(API_KEY_ENV_VAR) or "")


def resolve_api_key() -> str:
    key = os.getenv(API_KEY_ENV_VAR, "").strip()
    if key:
        return key
    key = load_saved_api_key().strip()
    if key:
        logger.info("Loaded %s from user config", API_KEY_ENV_VAR)
    return key


__all__ = ["config_path", "get_config_dir", "load_saved_api_key", "resolve_api_key"]
