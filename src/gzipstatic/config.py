"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All settings live in one dataclass. Values come from four layers, each
overriding the one before:

    ┌──────────────┐   ┌──────────────┐   ┌──────────────┐   ┌──────────┐
    │  defaults    │ < │ config file  │ < │ environment  │ < │ CLI flags│
    │ (dataclass)  │   │ (JSON/TOML)  │   │ GZIP_SERVER_*│   │          │
    └──────────────┘   └──────────────┘   └──────────────┘   └──────────┘

=============================================================================
CONFIG FILE DISCOVERY
=============================================================================

    1. --config PATH                    (must load, or ConfigError)
    2. ./gzip-server.config.json
    3. ./.gzip-server.json
    4. ./pyproject.toml  [tool.gzip-server]

Keys may be snake_case or the camelCase of the JSON format:

    {
      "port": 3000,
      "rootDir": "./public",
      "gzipLevel": 6,
      "gzipThreshold": 1024,
      "cacheMaxAge": 3600,
      "logLevel": "info"
    }

=============================================================================
"""

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("gzip-server.config.json", ".gzip-server.json")
PYPROJECT_TABLE = "gzip-server"
ENV_PREFIX = "GZIP_SERVER_"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# camelCase names used by JSON config files → dataclass field names
KEY_ALIASES = {
    "rootDir": "root_dir",
    "indexPath": "index_file",
    "indexFile": "index_file",
    "gzipLevel": "gzip_level",
    "gzipThreshold": "gzip_threshold",
    "cacheMaxAge": "cache_max_age",
    "cacheMaxSize": "cache_max_size",
    "watchInterval": "watch_interval",
    "logLevel": "log_level",
    "logFormat": "log_format",
    "open": "open_browser",
    "openBrowser": "open_browser",
    "keepAlive": "keep_alive",
    "keepAliveTimeout": "keep_alive_timeout",
    "maxRequestSize": "max_request_size",
    "minWorkers": "min_workers",
    "maxWorkers": "max_workers",
    "serverName": "server_name",
    "uploadDir": "upload_dir",
    "uploadMaxSize": "upload_max_size",
}


@dataclass
class ServerConfig:
    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    host: str = "127.0.0.1"
    """Interface to bind. "0.0.0.0" exposes the server to the network."""

    port: int = 3000

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Seconds to wait for the first request on a new connection."""

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024
    """A static server only receives headers; 1 MiB is generous."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────
    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # STATIC FILES
    # ─────────────────────────────────────────────────────────────────────
    root_dir: str = "./public"
    index_file: str = "index.html"

    gzip: bool = True
    gzip_level: int = 6
    """1 = fastest, 9 = smallest. 6 is zlib's own default."""

    gzip_threshold: int = 1024
    """Files of this many bytes or fewer are never compressed."""

    cache: bool = True
    cache_max_size: int = 100 * 1024 * 1024
    """Byte budget of the in-memory content cache (raw + gzip bytes)."""

    cache_max_age: int = 3600
    """Seconds sent in Cache-Control: public, max-age=N."""

    # ─────────────────────────────────────────────────────────────────────
    # DEVELOPMENT
    # ─────────────────────────────────────────────────────────────────────
    watch: bool = False
    watch_interval: float = 1.0
    cors: bool = False
    open_browser: bool = False

    # ─────────────────────────────────────────────────────────────────────
    # UPLOAD API
    # ─────────────────────────────────────────────────────────────────────
    upload_dir: Optional[str] = None
    """Directory for POST /api/upload. None disables the /api/ endpoints."""

    upload_max_size: int = 100 * 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────
    log_level: str = "info"
    log_format: str = "text"
    """Access log format: "text" or "json"."""

    server_name: str = "Gzip-Static-Server/1.0.0"

    # =====================================================================
    # CONSTRUCTION
    # =====================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Overlay `data` on `base` (or defaults). None values are skipped so a
        CLI flag that was not given does not clobber a file setting.
        """
        defaults = cls()
        values = asdict(base) if base is not None else asdict(defaults)
        known = {f.name for f in fields(cls)}

        for key, value in data.items():
            name = KEY_ALIASES.get(key, key)
            if name not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            if value is not None:
                values[name] = _check_type(name, value, getattr(defaults, name))
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Read GZIP_SERVER_* variables into a dict of typed overrides.

            GZIP_SERVER_PORT=8000       → {"port": 8000}
            GZIP_SERVER_GZIP=false      → {"gzip": False}
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        overrides: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(
                f.name, raw, getattr(defaults, f.name), label=ENV_PREFIX + f.name.upper()
            )
        return overrides

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # =====================================================================
    # VALIDATION
    # =====================================================================

    @property
    def log_level_value(self) -> int:
        return LOG_LEVELS.get(self.log_level.lower(), logging.INFO)

    def validate(self, check_root: bool = True) -> None:
        """Raise ConfigError describing the first invalid setting."""
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 1-65535.")
        if not 1 <= self.gzip_level <= 9:
            raise ConfigError(f"Invalid gzip_level: {self.gzip_level}. Must be 1-9.")
        if self.gzip_threshold < 0:
            raise ConfigError("gzip_threshold must be >= 0")
        if self.cache_max_size <= 0:
            raise ConfigError("cache_max_size must be > 0")
        if self.cache_max_age < 0:
            raise ConfigError("cache_max_age must be >= 0")
        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")
        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")
        if self.watch_interval <= 0:
            raise ConfigError("watch_interval must be > 0")
        if self.upload_max_size <= 0:
            raise ConfigError("upload_max_size must be > 0")
        if self.upload_dir is not None and not self.upload_dir.strip():
            raise ConfigError("upload_dir must not be empty")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(f"Invalid log_level: {self.log_level}")
        if self.log_format not in ("text", "json"):
            raise ConfigError(f"Invalid log_format: {self.log_format}")
        if not self.index_file or "/" in self.index_file:
            raise ConfigError(f"Invalid index_file: {self.index_file!r}")
        if check_root and not Path(self.root_dir).is_dir():
            raise ConfigError(f"Root directory does not exist: {self.root_dir}")


# =============================================================================
# CONFIG FILES
# =============================================================================

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _coerce(name: str, raw: str, default: Any, label: Optional[str] = None) -> Any:
    """Convert a string setting to the type of the field's default."""
    label = label or name
    if isinstance(default, bool):
        text = raw.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"Invalid value for {label}: {raw!r} (expected true/false)")
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {label}: {raw!r}")
    return raw


def _check_type(name: str, value: Any, default: Any) -> Any:
    """
    Make a config file value match its field. Strings are coerced like
    environment values; any other mismatch is a ConfigError.

        "port": "8080"   → 8080
        "port": true     → ConfigError
        "gzip": 1        → ConfigError
    """
    if isinstance(value, str) and default is not None and not isinstance(default, str):
        return _coerce(name, value, default)

    if isinstance(default, bool):
        ok = isinstance(value, bool)
    elif isinstance(default, int):
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif isinstance(default, float):
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        value = float(value) if ok else value
    else:
        ok = isinstance(value, str)

    if not ok:
        expected = "str" if default is None else type(default).__name__
        raise ConfigError(
            f"Invalid type for {name}: expected {expected}, got {type(value).__name__} ({value!r})"
        )
    return value


def read_config_file(path: Path | str) -> Dict[str, Any]:
    """
    Load one config file: JSON, or the [tool.gzip-server] table of a
    pyproject.toml.

    Raises:
        ConfigError: unreadable file or invalid syntax.
    """
    path = Path(path)
    try:
        if path.suffix == ".toml":
            with path.open("rb") as f:
                data = tomllib.load(f).get("tool", {}).get(PYPROJECT_TABLE, {})
        else:
            data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot load config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain an object")
    return data


def find_config_file(search_dir: Path | str = ".") -> Optional[Path]:
    search_dir = Path(search_dir)
    for name in CONFIG_FILE_NAMES:
        candidate = search_dir / name
        if candidate.is_file():
            return candidate

    pyproject = search_dir / "pyproject.toml"
    if pyproject.is_file():
        try:
            with pyproject.open("rb") as f:
                if PYPROJECT_TABLE in tomllib.load(f).get("tool", {}):
                    return pyproject
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Skipping unreadable {pyproject}: {e}")
    return None


def load_config_file(config_path: Optional[str] = None, search_dir: Path | str = ".") -> Dict[str, Any]:
    """
    Load the explicit config file, or the first one discovered.

    An explicit path must load. A discovered file that fails to load is
    logged and skipped.
    """
    if config_path:
        data = read_config_file(config_path)
        logger.info(f"Loaded config from {config_path}")
        return data

    found = find_config_file(search_dir)
    if found is None:
        return {}
    try:
        data = read_config_file(found)
    except ConfigError as e:
        logger.warning(f"{e}; using defaults")
        return {}
    logger.info(f"Loaded config from {found}")
    return data


def load_config(
    config_path: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
    search_dir: Path | str = ".",
) -> ServerConfig:
    """Merge defaults < file < environment < CLI and validate the result."""
    config = ServerConfig.from_dict(load_config_file(config_path, search_dir))
    config = ServerConfig.from_dict(ServerConfig.from_env(environ), base=config)
    config = ServerConfig.from_dict(cli_overrides or {}, base=config)
    config.validate()
    return config


SAMPLE_CONFIG = {
    "port": 3000,
    "host": "127.0.0.1",
    "rootDir": "./public",
    "gzip": True,
    "gzipLevel": 6,
    "gzipThreshold": 1024,
    "cache": True,
    "cacheMaxAge": 3600,
    "watch": False,
    "open": False,
    "logLevel": "info",
    "cors": False,
    "indexPath": "index.html",
    "uploadDir": None,
}


def write_sample_config(path: Path | str = CONFIG_FILE_NAMES[0]) -> Path:
    path = Path(path)
    try:
        path.write_text(json.dumps(SAMPLE_CONFIG, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e
    return path
