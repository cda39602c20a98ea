import os
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from tunesync.domain.ports import LIBRARY_BATCH_LIMIT, PLAYLIST_BATCH_LIMIT

ENV_PREFIX = "TUNESYNC_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_OPTIONAL_STRINGS = {"market", "log_file", "report_path"}


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class MigrationConfig:
    """Tunables for one migration run.

    Defaults reproduce the plain migration: library chunks of 50, playlist
    chunks of 100, private playlists, full cleanup of existing playlists.
    """

    library_chunk_size: int = LIBRARY_BATCH_LIMIT
    playlist_chunk_size: int = PLAYLIST_BATCH_LIMIT
    playlist_public: bool = False
    clear_playlists: bool = True
    cleanup_paginate: bool = True
    skip_system_playlists: bool = False
    dry_run: bool = False
    market: Optional[str] = None
    search_limit: int = 1
    requests_timeout: int = 15
    max_retries: int = 3
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "text"
    report_path: Optional[str] = None

    def __post_init__(self):
        if not 1 <= self.library_chunk_size <= LIBRARY_BATCH_LIMIT:
            raise ConfigError(f"library_chunk_size must be between 1 and {LIBRARY_BATCH_LIMIT}")
        if not 1 <= self.playlist_chunk_size <= PLAYLIST_BATCH_LIMIT:
            raise ConfigError(f"playlist_chunk_size must be between 1 and {PLAYLIST_BATCH_LIMIT}")
        if not 1 <= self.search_limit <= 50:
            raise ConfigError("search_limit must be between 1 and 50")
        if self.requests_timeout <= 0:
            raise ConfigError("requests_timeout must be positive")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level}")
        if self.log_format not in ("text", "json"):
            raise ConfigError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def load_config(environ: Optional[Mapping[str, str]] = None,
                env_file: Optional[str] = None) -> MigrationConfig:
    """Build a MigrationConfig from TUNESYNC_* environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``
        env_file: Optional .env file merged into the process environment first

    Returns:
        Validated configuration

    Raises:
        ConfigError: If a variable has an invalid value
    """
    if env_file:
        load_dotenv(env_file, override=False)
    if environ is None:
        environ = os.environ

    kwargs: Dict[str, Any] = {}
    for field in fields(MigrationConfig):
        field_name = field.name
        env_name = field_name.upper()
        raw = environ.get(ENV_PREFIX + env_name)
        if raw is None:
            continue
        default_value = field.default
        if isinstance(default_value, bool):
            kwargs[field_name] = _parse_bool(env_name, raw)
        elif isinstance(default_value, int):
            kwargs[field_name] = _parse_int(env_name, raw)
        else:
            value = raw.strip()
            if field_name in _OPTIONAL_STRINGS and not value:
                value = None
            kwargs[field_name] = value

    return MigrationConfig(**kwargs)
