"""Configuration management for the marketplace admin portal."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_database_path

PAGE_SIZE_CHOICES = (5, 10, 20, 50)


@dataclass(frozen=True)
class PortalSettings:
    """Resolved runtime settings."""

    database_path: Path
    session_secret: Optional[str] = None
    secure_cookies: bool = False
    token_ttl: timedelta = timedelta(hours=8)
    default_page_size: int = 10
    low_stock_threshold: int = 5
    activity_limit: int = 10
    trusted_proxies: Tuple[str, ...] = ()

    @property
    def proxy_hosts(self) -> list[str] | str:
        return list(self.trusted_proxies) or "*"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "PortalSettings":
        """Create :class:`PortalSettings` from raw dictionary data."""

        raw_db = data.get("database_path")
        if raw_db:
            db_path = Path(str(raw_db)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            database_path = db_path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        default_page_size = int(data.get("default_page_size", 10))  # type: ignore[arg-type]
        if default_page_size not in PAGE_SIZE_CHOICES:
            raise ValueError(
                f"default_page_size must be one of {', '.join(str(size) for size in PAGE_SIZE_CHOICES)}"
            )

        low_stock = int(data.get("low_stock_threshold", 5))  # type: ignore[arg-type]
        if low_stock < 0:
            raise ValueError("low_stock_threshold must not be negative")

        proxies_raw = data.get("trusted_proxies") or ()
        if isinstance(proxies_raw, str):
            proxies_raw = proxies_raw.split(",")
        proxies = tuple(str(item).strip() for item in proxies_raw if str(item).strip())  # type: ignore[union-attr]

        token_ttl_minutes = int(data.get("token_ttl_minutes", 480))  # type: ignore[arg-type]
        if token_ttl_minutes <= 0:
            raise ValueError("token_ttl_minutes must be positive")

        secret = data.get("session_secret")
        return PortalSettings(
            database_path=database_path,
            session_secret=str(secret) if secret else None,
            secure_cookies=_flag(data.get("secure_cookies"), False),
            token_ttl=timedelta(minutes=token_ttl_minutes),
            default_page_size=default_page_size,
            low_stock_threshold=low_stock,
            activity_limit=int(data.get("activity_limit", 10)),  # type: ignore[arg-type]
            trusted_proxies=proxies,
        )


def _flag(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


_ENV_KEYS = {
    "PORTAL_DB_PATH": "database_path",
    "PORTAL_SESSION_SECRET": "session_secret",
    "PORTAL_SESSION_SECURE": "secure_cookies",
    "PORTAL_TOKEN_TTL_MINUTES": "token_ttl_minutes",
    "PORTAL_DEFAULT_PAGE_SIZE": "default_page_size",
    "PORTAL_LOW_STOCK_THRESHOLD": "low_stock_threshold",
    "PORTAL_ACTIVITY_LIMIT": "activity_limit",
    "PORTAL_TRUSTED_PROXIES": "trusted_proxies",
}


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load the ``portal`` section of a YAML configuration file."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")
    section = raw.get("portal", {})
    if not isinstance(section, dict):
        raise ValueError("The 'portal' key must contain a mapping")
    return dict(section)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> PortalSettings:
    """Merge the optional YAML file with ``PORTAL_*`` environment overrides."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get("PORTAL_CONFIG"):
        config_path = Path(env["PORTAL_CONFIG"]).expanduser()

    data: Dict[str, object] = {}
    base_path: Optional[Path] = None
    if config_path is not None:
        data.update(load_config_file(config_path))
        base_path = config_path.resolve(strict=False).parent

    for env_key, setting in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            data[setting] = value.strip()
            if setting == "database_path":
                # Environment paths are resolved against the working directory.
                data[setting] = str(resolve_database_path(value.strip()))

    return PortalSettings.from_dict(data, base_path=base_path)


__all__ = ["PAGE_SIZE_CHOICES", "PortalSettings", "load_config_file", "load_settings"]
