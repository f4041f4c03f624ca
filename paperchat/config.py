"""Application configuration management."""

from __future__ import annotations

import json
import os
import sys
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping

CONFIG_DIR_NAME = "PaperChat"
DEFAULT_JSON_FILENAME = "settings.json"
DEFAULT_INI_FILENAME = "settings.ini"

DEFAULT_API_BASE_URL = "http://localhost:8001/api/v1"
DEFAULT_USER_ID = "user_12345"
DEFAULT_SESSION_LIMIT = 50
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 2

ENV_BASE_URL = "PAPERCHAT_API_BASE_URL"
ENV_USER_ID = "PAPERCHAT_USER_ID"
ENV_REQUEST_TIMEOUT = "PAPERCHAT_REQUEST_TIMEOUT"


def get_user_config_dir(app_name: str = CONFIG_DIR_NAME) -> Path:
    """Return the configuration directory for the current user.

    The directory is created on first use. On Windows the directory is
    under ``%APPDATA%``; otherwise the XDG base directory or ``~/.config``
    is used.
    """
    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    config_dir = base_dir / app_name
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


class ConfigManager:
    """Handle loading and saving user configuration settings."""

    def __init__(
        self,
        app_name: str = CONFIG_DIR_NAME,
        *,
        format: str = "json",
        filename: str | None = None,
    ) -> None:
        self.app_name = app_name
        self.format = format.lower()
        if self.format not in {"json", "ini"}:
            raise ValueError("format must be either 'json' or 'ini'")
        if filename is None:
            filename = (
                DEFAULT_JSON_FILENAME if self.format == "json" else DEFAULT_INI_FILENAME
            )
        self.config_dir = get_user_config_dir(app_name)
        self.config_path = self.config_dir / filename

    def load(self) -> dict[str, Any]:
        """Load configuration from disk.

        Returns an empty dictionary if the configuration file is absent.
        """
        if not self.config_path.exists():
            return {}

        if self.format == "json":
            with self.config_path.open("r", encoding="utf-8") as fh:
                return json.load(fh)

        parser = ConfigParser()
        parser.read(self.config_path, encoding="utf-8")
        return {section: dict(parser.items(section)) for section in parser.sections()}

    def save(self, data: MutableMapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        if self.format == "json":
            with self.config_path.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.write("\n")
            return

        parser = ConfigParser()
        for section, values in data.items():
            if not isinstance(values, MutableMapping):
                raise ValueError("INI configuration requires mapping values per section")
            parser[section] = {str(key): str(value) for key, value in values.items()}
        with self.config_path.open("w", encoding="utf-8") as fh:
            parser.write(fh)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ConfigManager(app_name={self.app_name!r}, format={self.format!r}, path={self.config_path!s})"


def normalize_base_url(value: str | None) -> str:
    """Strip whitespace and a trailing slash, falling back to the default URL."""

    cleaned = (value or "").strip().rstrip("/")
    return cleaned or DEFAULT_API_BASE_URL


@dataclass(frozen=True)
class ClientSettings:
    """Connection settings for the document-search backend."""

    base_url: str = DEFAULT_API_BASE_URL
    user_id: str = DEFAULT_USER_ID
    session_limit: int = DEFAULT_SESSION_LIMIT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def _coerce_positive_float(value: Any, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def load_client_settings(
    config_manager: ConfigManager | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ClientSettings:
    """Resolve :class:`ClientSettings` from the environment and settings file.

    Environment variables win over the ``client`` section of the settings
    file, which wins over built-in defaults.
    """

    env = os.environ if environ is None else environ
    manager = config_manager or ConfigManager()
    data = manager.load()
    section = data.get("client") if isinstance(data, dict) else None
    if not isinstance(section, dict):
        section = {}

    base_url = env.get(ENV_BASE_URL) or section.get("base_url")
    user_id = (env.get(ENV_USER_ID) or str(section.get("user_id") or "")).strip()
    timeout_raw = env.get(ENV_REQUEST_TIMEOUT) or section.get("request_timeout")

    # INI sections store everything as text, so numbers are coerced here
    max_retries_raw = section.get("max_retries", DEFAULT_MAX_RETRIES)
    try:
        max_retries = max(int(max_retries_raw), 0)
    except (TypeError, ValueError):
        max_retries = DEFAULT_MAX_RETRIES

    return ClientSettings(
        base_url=normalize_base_url(base_url),
        user_id=user_id or DEFAULT_USER_ID,
        session_limit=_coerce_positive_int(
            section.get("session_limit"), DEFAULT_SESSION_LIMIT
        ),
        request_timeout=_coerce_positive_float(timeout_raw, DEFAULT_REQUEST_TIMEOUT),
        max_retries=max_retries,
    )


__all__ = [
    "ClientSettings",
    "ConfigManager",
    "get_user_config_dir",
    "load_client_settings",
    "normalize_base_url",
]
