"""
Config system - Layered database configuration with validation.

Merge order (later overrides earlier):
1. Config files (YAML or JSON)
2. .env file (STRATA_* keys only)
3. Environment variables (STRATA_* prefix, ``__`` nests keys)
4. Manual overrides

Usage:
    loader = ConfigLoader.load(paths=["config/database.yaml"])
    config = loader.get_database_config()
    db = Database(config)
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, fields
from pathlib import Path
from urllib.parse import quote
import glob
import json
import os

from dotenv import dotenv_values

from .faults.domains import ConfigInvalidFault


_DEFAULT_PORTS = {"postgresql": 5432, "sqlite": None}

# Connection parts that stay strings even when they look like numbers.
_TEXT_KEYS = ("url", "driver", "host", "database", "user", "password")


@dataclass
class DatabaseConfig:
    """
    Typed database settings.

    Either ``url`` is given, or it is assembled from ``driver``, ``host``,
    ``port``, ``database``, ``user`` and ``password``.
    """

    url: Optional[str] = None
    driver: str = "sqlite"
    host: str = "localhost"
    port: Optional[int] = None
    database: str = ":memory:"
    user: Optional[str] = None
    password: Optional[str] = None
    pool_size: int = 5
    acquire_timeout: Optional[float] = 30.0
    connect_timeout: float = 10.0
    idle_timeout: Optional[float] = 300.0
    statement_timeout: Optional[float] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        for key in _TEXT_KEYS:
            value = getattr(self, key)
            if value is None or isinstance(value, str):
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(self, key, str(value))
            else:
                raise ConfigInvalidFault(key, f"must be a string, got {value!r}")
        if not isinstance(self.pool_size, int) or isinstance(self.pool_size, bool) or self.pool_size < 1:
            raise ConfigInvalidFault("pool_size", f"must be a positive integer, got {self.pool_size!r}")
        for key in ("acquire_timeout", "idle_timeout", "statement_timeout"):
            value = getattr(self, key)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ConfigInvalidFault(key, f"must be a positive number or null, got {value!r}")
        if not isinstance(self.connect_timeout, (int, float)) or self.connect_timeout <= 0:
            raise ConfigInvalidFault("connect_timeout", f"must be a positive number, got {self.connect_timeout!r}")
        if self.url is None and self.driver not in _DEFAULT_PORTS:
            raise ConfigInvalidFault("driver", f"unsupported driver {self.driver!r}")

    @property
    def dsn(self) -> str:
        """Connection URL, built from the individual parts when ``url`` is unset."""
        if self.url:
            return self.url
        if self.driver == "sqlite":
            return f"sqlite:///{self.database}"
        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        port = self.port or _DEFAULT_PORTS[self.driver]
        return f"{self.driver}://{auth}{self.host}:{port}/{self.database}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        """Build from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigInvalidFault("database", f"unknown keys {unknown}")
        return cls(**data)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files
    """

    def __init__(self, env_prefix: str = "STRATA_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list] = None,
        env_prefix: str = "STRATA_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from files matching pattern."""
        for match in sorted(glob.glob(pattern)):
            path = Path(match)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load STRATA_* keys from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert STRATA_DATABASE__POOL_SIZE to nested dict."""
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        if parts[-1] in _TEXT_KEYS:
            current[parts[-1]] = value
        else:
            current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
        if lowered in ("null", "none"):
            return None

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def get_database_config(self, section: str = "database") -> DatabaseConfig:
        """Build a validated ``DatabaseConfig`` from the ``database`` section."""
        data = self.get(section, {})
        if not isinstance(data, dict):
            raise ConfigInvalidFault(section, "must be a mapping")
        return DatabaseConfig.from_dict(data)

    def to_dict(self) -> dict:
        return self.config_data
