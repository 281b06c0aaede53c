"""Application configuration — loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "elite_notepad.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )

    # Remote store (Supabase)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")
    REMOTE_TIMEOUT_SECONDS: int = int(_runtime.get(
        "remote_timeout_seconds",
        os.getenv("REMOTE_TIMEOUT_SECONDS", "20"),
    ))

    # Sync cycle (settings.json overrides .env)
    SYNC_INTERVAL_SECONDS: int = int(_runtime.get(
        "sync_interval_seconds",
        os.getenv("SYNC_INTERVAL_SECONDS", "120"),
    ))
    SYNC_TIMEOUT_SECONDS: int = int(_runtime.get(
        "sync_timeout_seconds",
        os.getenv("SYNC_TIMEOUT_SECONDS", "60"),
    ))
    CONNECTIVITY_TIMEOUT_SECONDS: float = float(_runtime.get(
        "connectivity_timeout_seconds",
        os.getenv("CONNECTIVITY_TIMEOUT_SECONDS", "3"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def remote_host(cls) -> tuple[str, int] | None:
        """Host and port of the remote store, used for connectivity probes."""
        if not cls.SUPABASE_URL:
            return None
        parsed = urlparse(cls.SUPABASE_URL)
        if not parsed.hostname:
            return None
        port = parsed.port or (80 if parsed.scheme == "http" else 443)
        return parsed.hostname, port

    @classmethod
    def update_sync_settings(cls, interval: int, timeout: int):
        """Update sync cycle settings at runtime and persist to disk."""
        cls.SYNC_INTERVAL_SECONDS = interval
        cls.SYNC_TIMEOUT_SECONDS = timeout

        settings = _load_settings()
        settings["sync_interval_seconds"] = interval
        settings["sync_timeout_seconds"] = timeout
        _save_settings(settings)

    @classmethod
    def update_remote_timeout(cls, seconds: int):
        """Update the per-request remote timeout and persist."""
        cls.REMOTE_TIMEOUT_SECONDS = seconds

        settings = _load_settings()
        settings["remote_timeout_seconds"] = seconds
        _save_settings(settings)
