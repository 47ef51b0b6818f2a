"""
Configuration loader for the guidebot service.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class EngineConfig:
    default_workflow: str = ""          # empty: the registry's default
    max_transitions: int = 20
    serialize_per_user: bool = True     # per-(platform, user_id) lock around each event
    items_per_page: int = 5


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///./guidebot.db"              # postgresql:// | mysql:// | sqlite://
    store_backend: str = "memory"                      # "sql" | "memory" | "file"
    store_file_dir: str = "./data"                     # directory for file backend


@dataclass
class ChannelConfig:
    enabled: bool = False
    credentials: dict[str, Any] = field(default_factory=dict)


@dataclass
class Settings:
    app_name: str = "guidebot"
    debug: bool = False
    engine: EngineConfig = field(default_factory=EngineConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    channels: dict[str, ChannelConfig] = field(default_factory=dict)

    def channel(self, name: str) -> ChannelConfig:
        return self.channels.get(name, ChannelConfig())


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "GUIDEBOT_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "engine" in raw:
            eng = raw["engine"] or {}
            defaults = EngineConfig()
            settings.engine = EngineConfig(
                default_workflow=eng.get("default_workflow", defaults.default_workflow),
                max_transitions=int(eng.get("max_transitions", defaults.max_transitions)),
                serialize_per_user=eng.get("serialize_per_user", defaults.serialize_per_user),
                items_per_page=int(eng.get("items_per_page", defaults.items_per_page)),
            )

        if "database" in raw:
            db = raw["database"] or {}
            settings.database = DatabaseConfig(
                url=db.get("url", settings.database.url),
                store_backend=db.get("store_backend", settings.database.store_backend),
                store_file_dir=db.get("store_file_dir", settings.database.store_file_dir),
            )

        if "channels" in raw:
            for ch_name, ch_data in (raw["channels"] or {}).items():
                ch_data = ch_data or {}
                settings.channels[ch_name] = ChannelConfig(
                    enabled=ch_data.get("enabled", False),
                    credentials=ch_data.get("credentials", {}),
                )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (for testing)."""
    global _settings
    _settings = None
