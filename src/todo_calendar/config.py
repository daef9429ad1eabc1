"""Configuration management for the todo calendar.

Settings live in ``config.yaml`` inside the data directory. Any field can be
overridden with a ``TODO_CALENDAR_<FIELD>`` environment variable, which is
how the hosted project's URL and key are usually supplied.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


logger = logging.getLogger(__name__)

BACKENDS = ("supabase", "memory")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_DATA_DIR = "~/.todo-calendar"


@dataclass
class ConfigModel:
    """Global configuration model for the todo calendar."""

    # Backend selection
    backend: str = "supabase"  # supabase, memory
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    request_timeout: float = 30.0

    # Realtime
    realtime_enabled: bool = True
    heartbeat_interval: float = 30.0

    # Calendar display
    first_day_of_week: int = 6  # 0=Monday, 6=Sunday

    # Files and logging
    data_dir: str = DEFAULT_DATA_DIR
    log_level: str = "WARNING"

    # Web server
    web_host: str = "127.0.0.1"
    web_port: int = 8000

    def __post_init__(self):
        self.data_dir = os.path.expanduser(str(self.data_dir))
        self.log_level = str(self.log_level).upper()
        self.validate()

    def validate(self):
        """Check field values.

        Raises:
            ConfigError: If a value is out of range
        """
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend '{self.backend}', expected one of {', '.join(BACKENDS)}")
        if not 0 <= int(self.first_day_of_week) <= 6:
            raise ConfigError("first_day_of_week must be between 0 (Monday) and 6 (Sunday)")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.heartbeat_interval <= 0:
            raise ConfigError("heartbeat_interval must be positive")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level '{self.log_level}'")
        if not 0 < int(self.web_port) < 65536:
            raise ConfigError("web_port must be a valid TCP port")

    def require_supabase(self):
        """Raise ConfigError unless the hosted project is configured."""
        if not self.supabase_url or not self.supabase_anon_key:
            raise ConfigError(
                "supabase_url and supabase_anon_key must be set "
                "(config.yaml or TODO_CALENDAR_SUPABASE_URL / TODO_CALENDAR_SUPABASE_ANON_KEY)"
            )

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        return yaml.safe_dump(asdict(self), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConfigModel":
        """Deserialize config from YAML; unknown keys are ignored."""
        try:
            data = yaml.safe_load(yaml_str) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}")
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def get_config_path(self) -> Path:
        return Path(self.data_dir) / "config.yaml"

    def get_session_path(self) -> Path:
        return Path(self.data_dir) / "session.json"


class EnvironmentSettings(BaseSettings):
    """``TODO_CALENDAR_*`` environment overrides; unset fields stay None."""

    model_config = SettingsConfigDict(env_prefix="TODO_CALENDAR_", extra="ignore")

    backend: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    request_timeout: Optional[float] = Field(default=None, gt=0)
    realtime_enabled: Optional[bool] = None
    heartbeat_interval: Optional[float] = Field(default=None, gt=0)
    first_day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    data_dir: Optional[str] = None
    log_level: Optional[str] = None
    web_host: Optional[str] = None
    web_port: Optional[int] = None

    def overrides(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def environment_overrides() -> Dict[str, Any]:
    """Read overrides from the environment.

    Raises:
        ConfigError: If a variable cannot be parsed
    """
    try:
        return EnvironmentSettings().overrides()
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid TODO_CALENDAR_* environment variable: {e}")


class Config:
    """Configuration manager for the todo calendar."""

    _instance: Optional[ConfigModel] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Load configuration from file and environment.

        The data directory itself may come from the environment, so the
        overrides are read before the file is located and applied again on
        top of the file's values.
        """
        if cls._instance is not None:
            return cls._instance

        env = environment_overrides()
        if config_path is None:
            data_dir = os.path.expanduser(env.get("data_dir", DEFAULT_DATA_DIR))
            config_path = Path(data_dir) / "config.yaml"

        data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                data = asdict(ConfigModel.from_yaml(config_path.read_text()))
            except OSError as e:
                raise ConfigError(f"Failed to read config from {config_path}: {e}")
            logger.debug(f"Loaded configuration from {config_path}")
        else:
            logger.debug(f"No configuration at {config_path}, using defaults")

        data.update(env)
        config = ConfigModel(**data)
        cls._instance = config
        return config

    @classmethod
    def save(cls, config: ConfigModel, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = config.get_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            config_path.write_text(config.to_yaml())
        except OSError as e:
            raise ConfigError(f"Failed to save config to {config_path}: {e}")
        logger.info(f"Configuration saved to {config_path}")

    @classmethod
    def get(cls) -> ConfigModel:
        """Get the current configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reload(cls) -> ConfigModel:
        """Reload configuration from file and environment."""
        cls._instance = None
        return cls.load()


def get_config() -> ConfigModel:
    """Get the current configuration."""
    return Config.get()


def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    """Load configuration from file."""
    return Config.load(config_path)


def save_config(config: ConfigModel, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    Config.save(config, config_path)
