"""Shared configuration contracts and validation helpers for profile-refresher."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import timedelta
import os
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

from .errors import ConfigError

APP_NAME = "profile-refresher"
CONFIG_ENV_VAR = "PROFILE_REFRESHER_CONFIG"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_DB_FILENAME = "state.db"

DEFAULT_CONFIG_TEMPLATE = """[app]
debug = false

[refresh]
cooldown_hours = 12
max_contacts_per_pass = 50
concurrency = 5
fetch_timeout_seconds = 1800
retry_delay_seconds = 60
active_window_days = 30
recently_refreshed_hours = 24

[storage]
# Empty means the platform data directory.
db_path = ""
"""


@dataclass(frozen=True)
class AppConfig:
    debug: bool = False


@dataclass(frozen=True)
class RefreshConfig:
    cooldown_hours: int = 12
    max_contacts_per_pass: int = 50
    concurrency: int = 5
    fetch_timeout_seconds: int = 30 * 60
    retry_delay_seconds: int = 60
    active_window_days: int = 30
    recently_refreshed_hours: int = 24

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @property
    def retry_delay(self) -> timedelta:
        return timedelta(seconds=self.retry_delay_seconds)

    @property
    def active_window(self) -> timedelta:
        return timedelta(days=self.active_window_days)

    @property
    def recently_refreshed_window(self) -> timedelta:
        return timedelta(hours=self.recently_refreshed_hours)


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = ""


@dataclass(frozen=True)
class RuntimeConfig:
    app: AppConfig = field(default_factory=AppConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def default_config() -> RuntimeConfig:
    return RuntimeConfig()


def default_config_toml() -> str:
    return DEFAULT_CONFIG_TEMPLATE


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path:
        return Path(config_path).expanduser()

    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()

    config_dir = Path(user_config_dir(APP_NAME, appauthor=False))
    return config_dir / DEFAULT_CONFIG_FILENAME


def resolve_db_path(config: RuntimeConfig, override: str | Path | None = None) -> Path:
    if override:
        return Path(override).expanduser()
    if config.storage.db_path:
        return Path(config.storage.db_path).expanduser()
    return Path(user_data_dir(APP_NAME, appauthor=False)) / DEFAULT_DB_FILENAME


def init_default_config(config_path: str | Path | None = None, force: bool = False) -> Path:
    path = resolve_config_path(config_path)
    if path.exists() and path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; expected a TOML file path (for example '{path / DEFAULT_CONFIG_FILENAME}')."
        )
    if path.exists() and not force:
        raise ConfigError(
            f"Config file already exists at '{path}'. Re-run with --force to overwrite."
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_toml(), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not write config file at '{path}': {exc}. "
            "Check path permissions or choose a writable location with `--path`."
        ) from exc
    return path


def load_runtime_config(config_path: str | Path | None = None) -> RuntimeConfig:
    path = resolve_config_path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found at '{path}'. Run `profile-refresher config init --path \"{path}\"` to generate defaults."
        )
    if path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; pass a file path ending in '{DEFAULT_CONFIG_FILENAME}'."
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not read config file '{path}': {exc}. "
            "Check file permissions and that the path points to a readable TOML file."
        ) from exc
    raw = _load_toml(text, path)
    return _parse_runtime_config(raw)


def load_runtime_config_or_default(config_path: str | Path | None = None) -> RuntimeConfig:
    """Load config when a file exists at the resolved path, otherwise use defaults."""
    path = resolve_config_path(config_path)
    if not path.exists():
        return default_config()
    return load_runtime_config(path)


def config_to_dict(config: RuntimeConfig) -> dict[str, Any]:
    return asdict(config)


def _load_toml(text: str, path: Path) -> dict[str, Any]:
    try:
        import tomllib  # Python 3.11+
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Config file '{path}' contains invalid TOML: {exc}. "
            "Fix the syntax or regenerate defaults with `profile-refresher config init --force`."
        ) from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must parse to a TOML table.")
    return data


def _parse_runtime_config(data: dict[str, Any]) -> RuntimeConfig:
    app_raw = _expect_table(data, "app", default={})
    refresh_raw = _expect_table(data, "refresh", default={})
    storage_raw = _expect_table(data, "storage", default={})

    defaults = RefreshConfig()
    app_config = AppConfig(debug=_expect_bool(app_raw, "app.debug", default=False))
    refresh_config = RefreshConfig(
        cooldown_hours=_expect_positive_int(refresh_raw, "refresh.cooldown_hours", defaults.cooldown_hours),
        max_contacts_per_pass=_expect_positive_int(
            refresh_raw, "refresh.max_contacts_per_pass", defaults.max_contacts_per_pass
        ),
        concurrency=_expect_positive_int(refresh_raw, "refresh.concurrency", defaults.concurrency),
        fetch_timeout_seconds=_expect_positive_int(
            refresh_raw, "refresh.fetch_timeout_seconds", defaults.fetch_timeout_seconds
        ),
        retry_delay_seconds=_expect_positive_int(
            refresh_raw, "refresh.retry_delay_seconds", defaults.retry_delay_seconds
        ),
        active_window_days=_expect_positive_int(
            refresh_raw, "refresh.active_window_days", defaults.active_window_days
        ),
        recently_refreshed_hours=_expect_positive_int(
            refresh_raw, "refresh.recently_refreshed_hours", defaults.recently_refreshed_hours
        ),
    )
    storage_config = StorageConfig(db_path=_expect_string(storage_raw, "storage.db_path", default=""))
    return RuntimeConfig(app=app_config, refresh=refresh_config, storage=storage_config)


def _expect_table(data: dict[str, Any], key: str, default: dict[str, Any]) -> dict[str, Any]:
    value = data.get(key, default)
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid [{key}] table: expected table, got {type(value).__name__}.")
    return value


def _expect_string(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key.split(".")[-1], default)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for '{key}': expected string.")
    return value.strip()


def _expect_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Invalid value for '{key}': expected positive integer.")
    return value


def _expect_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{key}': expected boolean true/false.")
    return value
