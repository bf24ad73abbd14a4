"""
Configuration loader for the routing flow engine.

Settings come from a YAML file (config/settings.yaml, or the path in
ROUTING_CONFIG). String values may reference environment variables as
${VAR_NAME}; unset variables are left as written. Keys missing from the
file keep the dataclass defaults, unknown keys are ignored.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, TypeVar

import yaml

DEFAULT_ENDPOINTS = {
    "execute_query": "/api/instances/{instance}/query",
    "online_sessions": "/api/online-sessions/{instance}",
}


@dataclass
class RoutingConfig:
    max_steps: Optional[int] = 100          # None = unbounded walk
    cache_flows: bool = True                # keep built flows per instance:sector


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///./routing_flows.db"       # postgresql:// | mysql:// | sqlite://
    store_backend: str = "memory"                   # "sql" | "memory" | "file"
    store_file_dir: str = "./data"                  # directory for file backend


@dataclass
class ServicesConfig:
    data_source: str = "memory"                     # "sql" | "rest" | "memory"
    sessions: str = "memory"                        # "rest" | "memory"
    chat_counter: str = "memory"                    # "sql" | "memory"
    instances_url: str = "http://localhost:8000"
    auth_url: str = "http://localhost:8001"
    auth_type: str = "bearer"                       # "bearer" | "api_key" | "none"
    auth_credentials: dict[str, Any] = field(default_factory=dict)
    endpoints: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    timeout_seconds: float = 30.0


@dataclass
class Settings:
    app_name: str = "RoutingFlows"
    debug: bool = False
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)
    instances: dict[str, str] = field(default_factory=dict)   # instance → data source URL


_settings: Optional[Settings] = None

_ENV_VAR = re.compile(r"\$\{(\w+)\}")

SectionT = TypeVar("SectionT")


def _expand_env(obj: Any) -> Any:
    """Recursively substitute ${VAR} in every string value."""
    if isinstance(obj, str):
        return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    return obj


def _section(cls: type[SectionT], raw: Optional[dict]) -> SectionT:
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (raw or {}).items() if k in known})


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML and make them the cached settings."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "ROUTING_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()
    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            raw = _expand_env(yaml.safe_load(f) or {})

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)
        settings.routing = _section(RoutingConfig, raw.get("routing"))
        settings.database = _section(DatabaseConfig, raw.get("database"))
        settings.services = _section(ServicesConfig, raw.get("services"))
        if not settings.services.endpoints:
            settings.services.endpoints = dict(DEFAULT_ENDPOINTS)
        settings.instances = raw.get("instances") or {}

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
