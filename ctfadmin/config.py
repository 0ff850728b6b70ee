"""Configuration management for the administration service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_MAX_PAGE_SIZE = 500


def _expand(raw: str, base_path: Path | None) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


def _positive_int(value: object, name: str) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Setting '{name}' must be an integer") from exc
    if number <= 0:
        raise ValueError(f"Setting '{name}' must be greater than zero")
    return number


def _split_hosts(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class AdminSettings:
    """Runtime settings for the administration API."""

    database_path: Path
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    default_user_page: int = 100
    default_team_page: int = 100
    default_log_page: int = 50
    default_file_page: int = 50
    trusted_proxies: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "AdminSettings":
        """Create :class:`AdminSettings` from raw dictionary data."""

        raw_path = data.get("database_path")
        if raw_path:
            database_path = _expand(str(raw_path), base_path)
        else:
            database_path = resolve_database_path(None)

        pages = data.get("page_sizes") or {}
        if not isinstance(pages, Mapping):
            raise ValueError("'page_sizes' must be a mapping")

        proxies = data.get("trusted_proxies") or ()
        if isinstance(proxies, str):
            proxies = _split_hosts(proxies)

        settings = AdminSettings(
            database_path=database_path,
            max_page_size=_positive_int(data.get("max_page_size", DEFAULT_MAX_PAGE_SIZE), "max_page_size"),
            default_user_page=_positive_int(pages.get("users", 100), "page_sizes.users"),
            default_team_page=_positive_int(pages.get("teams", 100), "page_sizes.teams"),
            default_log_page=_positive_int(pages.get("logs", 50), "page_sizes.logs"),
            default_file_page=_positive_int(pages.get("files", 50), "page_sizes.files"),
            trusted_proxies=tuple(str(host) for host in proxies),
        )
        return settings

    def with_env(self, environ: Mapping[str, str]) -> "AdminSettings":
        overrides: Dict[str, object] = {}
        db_path = environ.get("CTFADMIN_DB_PATH")
        if db_path:
            overrides["database_path"] = resolve_database_path(db_path)
        max_page = environ.get("CTFADMIN_MAX_PAGE_SIZE")
        if max_page:
            overrides["max_page_size"] = _positive_int(max_page, "CTFADMIN_MAX_PAGE_SIZE")
        proxies = environ.get("CTFADMIN_TRUSTED_PROXIES")
        if proxies:
            overrides["trusted_proxies"] = _split_hosts(proxies)
        if not overrides:
            return self
        return replace(self, **overrides)

    def proxy_hosts(self) -> list[str] | str:
        return list(self.trusted_proxies) or "*"


def load_settings(config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AdminSettings:
    """Load settings from a YAML file (if present) and apply environment overrides."""

    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = resolve_config_path(environ.get("CTFADMIN_CONFIG"))

    raw: Mapping[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

    settings = AdminSettings.from_dict(raw, base_path=config_path.parent)
    return settings.with_env(environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_PROJECT_ROOT / "config" / "settings.yaml").resolve(strict=False)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_PROJECT_ROOT / "data" / "ctfadmin.sqlite3").resolve(strict=False)


__all__ = [
    "AdminSettings",
    "DEFAULT_MAX_PAGE_SIZE",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
