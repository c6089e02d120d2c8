"""
Routing settings (``expense_routing.config``).

Responsibility
--------------
Loads the YAML settings file and parses it into a frozen
``RoutingSettings`` instance.  ``load_settings()`` is the single entry
point; services receive a ``RoutingSettings`` by constructor injection
and never read files or environment variables themselves.

Resolution order
----------------
1. Explicit ``path`` argument.
2. ``EXPENSE_ROUTING_CONFIG`` environment variable.
3. The packaged ``settings.yaml`` next to this module.

``DATABASE_URL`` in the environment overrides ``database_url`` from
whichever file was loaded.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or wrong value type  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from expense_routing.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

CONFIG_PATH_ENV = "EXPENSE_ROUTING_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


@dataclass(frozen=True)
class RoutingSettings:
    """Runtime settings for the routing engine."""

    database_url: str = "sqlite:///expense_routing.db"
    override_roles: tuple[str, ...] = ("admin",)
    require_comment_on_reject: bool = False
    max_comment_length: int = 2000
    max_conflict_retries: int = 3
    log_level: str = "INFO"
    pool_size: int = 20
    pool_timeout: int = 30

    def __post_init__(self) -> None:
        if self.max_comment_length < 1:
            raise ValueError("max_comment_length must be >= 1")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must be >= 0")
        # An empty tuple disables the override
        if any(not isinstance(r, str) or not r for r in self.override_roles):
            raise ValueError("override_roles must be non-empty strings")

    def is_override_role(self, role: str | None) -> bool:
        """True if ``role`` may decide on behalf of any approver."""
        if role is None:
            return False
        return role.lower() in {r.lower() for r in self.override_roles}


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "override_roles": list,
    "require_comment_on_reject": bool,
    "max_comment_length": int,
    "max_conflict_retries": int,
    "log_level": str,
    "pool_size": int,
    "pool_timeout": int,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def parse_settings(data: dict[str, Any]) -> RoutingSettings:
    """Build ``RoutingSettings`` from a parsed YAML mapping."""
    known = {f.name for f in fields(RoutingSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        expected = _FIELD_TYPES[key]
        # bool is an int subclass; reject it where an int is expected
        if expected is int and isinstance(value, bool):
            raise ValueError(f"Setting '{key}' must be an integer")
        if not isinstance(value, expected):
            raise ValueError(
                f"Setting '{key}' must be {expected.__name__}, "
                f"got {type(value).__name__}"
            )
        kwargs[key] = tuple(value) if expected is list else value
    return RoutingSettings(**kwargs)


def load_settings(path: Path | str | None = None) -> RoutingSettings:
    """Load settings from YAML, applying environment overrides."""
    if path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        path = Path(env_path) if env_path else _DEFAULT_SETTINGS_PATH
    path = Path(path)

    data = load_yaml_file(path)
    db_url = os.environ.get(DATABASE_URL_ENV)
    if db_url:
        data["database_url"] = db_url

    settings = parse_settings(data)
    logger.debug(
        "settings_loaded",
        extra={
            "path": str(path),
            "override_roles": list(settings.override_roles),
            "max_conflict_retries": settings.max_conflict_retries,
        },
    )
    return settings
