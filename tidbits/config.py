"""
Configuration management for tidbits.

Settings are stored as a TOML file in the tidbits home directory
(``~/.tidbits`` unless TIDBITS_HOME says otherwise). The command layer
loads them once per invocation and passes them down explicitly; nothing
in the core reads configuration on its own.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .errors import ConfigurationError


CONFIG_FILENAME = "tidbits.toml"
CONFIG_VERSION = 1

DB_FILENAME = "tidbits.db"
SYNC_FILENAME = "sync.yaml"
MEDIA_DIRNAME = "media"

LOCAL_MODE = "local"
REMOTE_MODE = "remote"
MODES = (LOCAL_MODE, REMOTE_MODE)

DEFAULT_REQUEST_TIMEOUT = 5.0


def get_default_home() -> Path:
    """TIDBITS_HOME if set, else ~/.tidbits."""
    env_home = os.environ.get("TIDBITS_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".tidbits"


@dataclass
class Settings:
    """Complete per-invocation settings."""
    home: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    mode: str = LOCAL_MODE
    server_url: str = ""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    sync_file: Optional[Path] = None
    media_dir: Optional[Path] = None
    db_path: Optional[Path] = None

    def __post_init__(self) -> None:
        self.home = Path(self.home)
        if self.sync_file is None:
            self.sync_file = self.home / SYNC_FILENAME
        if self.media_dir is None:
            self.media_dir = self.home / MEDIA_DIRNAME
        if self.db_path is None:
            self.db_path = self.home / DB_FILENAME

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.home / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If the settings cannot drive the service
        """
        if self.mode not in MODES:
            raise ConfigurationError(
                f"Unknown mode: {self.mode!r}. Available: {list(MODES)}"
            )
        if self.mode == REMOTE_MODE and not self.server_url:
            raise ConfigurationError("remote mode requires a server url")
        if self.request_timeout <= 0:
            raise ConfigurationError("request timeout must be positive")


def _apply_env_overrides(settings: Settings) -> Settings:
    server_url = os.environ.get("TIDBITS_SERVER_URL")
    if server_url:
        settings.server_url = server_url
    return settings


def load_settings(home: Path) -> Settings:
    """
    Load settings from a home directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = home / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    section = data.get("tidbits", {})
    version = section.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    mode = section.get("mode", LOCAL_MODE)
    if mode not in MODES:
        raise ValueError(f"Invalid mode {mode!r} in {config_path}")

    server = data.get("server", {})
    paths = data.get("paths", {})

    def optional_path(name: str) -> Optional[Path]:
        value = paths.get(name)
        return Path(value).expanduser() if value else None

    settings = Settings(
        home=home,
        version=version,
        created=section.get("created", ""),
        mode=mode,
        server_url=server.get("url", ""),
        request_timeout=float(server.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        sync_file=optional_path("sync_file"),
        media_dir=optional_path("media_dir"),
        db_path=optional_path("db_path"),
    )
    return _apply_env_overrides(settings)


def save_settings(settings: Settings) -> None:
    """
    Save settings to the home directory.

    Creates the directory if it doesn't exist.
    """
    settings.home.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "tidbits": {
            "version": settings.version,
            "created": settings.created,
            "mode": settings.mode,
        },
        "server": {
            "url": settings.server_url,
            "request_timeout": settings.request_timeout,
        },
        "paths": {
            "sync_file": str(settings.sync_file),
            "media_dir": str(settings.media_dir),
            "db_path": str(settings.db_path),
        },
    }

    with open(settings.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_settings(home: Optional[Path] = None) -> Settings:
    """
    Load existing settings or create new ones with defaults.

    This is the main entry point for config management.
    """
    home = home or get_default_home()
    config_path = home / CONFIG_FILENAME

    if config_path.exists():
        return load_settings(home)

    settings = _apply_env_overrides(Settings(home=home))
    save_settings(settings)
    return settings
