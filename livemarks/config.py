from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_str_first(names: tuple[str, ...], default: str) -> str:
    for name in names:
        v = os.getenv(name)
        if v is None or v == "":
            continue
        return v
    return default


@dataclass
class Settings:
    # Datastore
    store_url: str = ""
    api_key: str = ""
    access_token: str = ""
    user_id: str = ""
    http_timeout_s: int = 15

    # Live sync
    poll_interval_s: float = 8.0

    # Library defaults
    favicon_template: str = "https://www.google.com/s2/favicons?domain={host}&sz=64"
    default_folder_color: str = "#6366f1"

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        # Compat: SUPABASE_URL / SUPABASE_ANON_KEY also supported; LIVEMARKS_ variant wins when both are set.
        s.store_url = _env_str_first(("LIVEMARKS_STORE_URL", "SUPABASE_URL"), s.store_url)
        s.api_key = _env_str_first(("LIVEMARKS_API_KEY", "SUPABASE_ANON_KEY"), s.api_key)
        s.access_token = _env_str("LIVEMARKS_ACCESS_TOKEN", s.access_token)
        s.user_id = _env_str("LIVEMARKS_USER_ID", s.user_id)
        s.http_timeout_s = _env_int("LIVEMARKS_HTTP_TIMEOUT_S", s.http_timeout_s)

        s.poll_interval_s = _env_float("LIVEMARKS_POLL_INTERVAL_S", s.poll_interval_s)

        s.favicon_template = _env_str("LIVEMARKS_FAVICON_TEMPLATE", s.favicon_template)
        s.default_folder_color = _env_str("LIVEMARKS_FOLDER_COLOR", s.default_folder_color)

        s.log_level = _env_str("LIVEMARKS_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("LIVEMARKS_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
