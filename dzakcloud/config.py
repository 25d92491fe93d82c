"""Runtime configuration for the site backend."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import DEFAULT_POOL_SIZE, resolve_database_path

_ENV_PREFIX = "DZAKCLOUD_"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_list(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError(f"Expected a list or comma separated string, got {value!r}")
    return tuple(item.strip() for item in items if item.strip())


def _resolve_path(value: object, base_path: Optional[Path]) -> Path:
    raw = Path(str(value)).expanduser()
    if not raw.is_absolute() and base_path is not None:
        raw = base_path / raw
    return raw.resolve(strict=False)


def _default_data_dir() -> Path:
    """Directory holding the default database, also scanned for legacy JSON files."""

    return resolve_database_path(None).parent


@dataclass(frozen=True)
class Settings:
    """Settings shared by the HTTP application and the command line."""

    database_path: Path
    secret_key: Optional[str] = None
    token_ttl: timedelta = timedelta(hours=24)
    legacy_data_dir: Optional[Path] = None
    import_on_startup: bool = True
    admin_tokens: Tuple[str, ...] = ()
    cors_origins: Tuple[str, ...] = ("*",)
    spa_dir: Optional[Path] = None
    ping_message: str = "ping"
    pool_size: int = DEFAULT_POOL_SIZE
    default_page_size: int = 100
    max_page_size: int = 500

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from a flat mapping of configuration keys."""

        unknown = set(data.keys()) - _KNOWN_KEYS
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db_path = data.get("database_path")
        if raw_db_path:
            database_path = _resolve_path(raw_db_path, base_path)
        else:
            database_path = resolve_database_path(None)

        legacy_dir = data.get("legacy_data_dir")
        spa_dir = data.get("spa_dir")
        token_ttl_hours = float(data.get("token_ttl_hours", 24))
        if token_ttl_hours <= 0:
            raise ValueError("token_ttl_hours must be positive")

        pool_size = int(data.get("pool_size", DEFAULT_POOL_SIZE))
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")

        default_page_size = int(data.get("default_page_size", 100))
        max_page_size = int(data.get("max_page_size", 500))
        if default_page_size < 1 or max_page_size < default_page_size:
            raise ValueError("Page sizes must satisfy 1 <= default_page_size <= max_page_size")

        import_on_startup = data.get("import_on_startup", True)
        if isinstance(import_on_startup, str):
            import_on_startup = _env_flag(import_on_startup)

        cors_origins = _split_list(data["cors_origins"]) if "cors_origins" in data else ("*",)

        return Settings(
            database_path=database_path,
            secret_key=str(data["secret_key"]) if data.get("secret_key") else None,
            token_ttl=timedelta(hours=token_ttl_hours),
            legacy_data_dir=_resolve_path(legacy_dir, base_path) if legacy_dir else _default_data_dir(),
            import_on_startup=bool(import_on_startup),
            admin_tokens=_split_list(data.get("admin_tokens")),
            cors_origins=cors_origins,
            spa_dir=_resolve_path(spa_dir, base_path) if spa_dir else None,
            ping_message=str(data.get("ping_message", "ping")),
            pool_size=pool_size,
            default_page_size=default_page_size,
            max_page_size=max_page_size,
        )


_KNOWN_KEYS = {
    "database_path",
    "secret_key",
    "token_ttl_hours",
    "legacy_data_dir",
    "import_on_startup",
    "admin_tokens",
    "cors_origins",
    "spa_dir",
    "ping_message",
    "pool_size",
    "default_page_size",
    "max_page_size",
}

_ENV_KEYS = {
    "DB_PATH": "database_path",
    "SECRET_KEY": "secret_key",
    "TOKEN_TTL_HOURS": "token_ttl_hours",
    "DATA_DIR": "legacy_data_dir",
    "IMPORT_ON_STARTUP": "import_on_startup",
    "ADMIN_TOKENS": "admin_tokens",
    "CORS_ORIGINS": "cors_origins",
    "SPA_DIR": "spa_dir",
    "POOL_SIZE": "pool_size",
}

_PATH_KEYS = {"database_path", "legacy_data_dir", "spa_dir"}


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    for suffix, key in _ENV_KEYS.items():
        value = environ.get(_ENV_PREFIX + suffix)
        if value is None or not value.strip():
            continue
        if key in _PATH_KEYS:
            overrides[key] = str(Path(value.strip()).expanduser().resolve(strict=False))
        else:
            overrides[key] = value.strip()
    ping = environ.get("PING_MESSAGE")
    if ping is not None:
        overrides["ping_message"] = ping
    return overrides


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the path to the optional YAML configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (Path(__file__).resolve().parent.parent / "config" / "site.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides.

    Relative paths in the YAML file are resolved against the file's directory.
    """

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get(_ENV_PREFIX + "CONFIG"))

    raw: Dict[str, object] = {}
    base_path: Optional[Path] = None
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        raw.update(loaded)
        base_path = config_path.parent

    raw.update(_environment_overrides(env))
    return Settings.from_dict(raw, base_path=base_path)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
