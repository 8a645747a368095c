"""
Configuration management for Bluestack.

Handles loading, validation, and access to configuration settings.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ByteSize, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerConfig(BaseModel):
    """Edge HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = Field(default=4566, ge=1, le=65535, description="Edge port")
    request_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds before a request is answered with 504",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: Literal["json", "text"] = "json"
    file: Optional[str] = None
    rotation_size: ByteSize = Field(
        default=ByteSize(10 * 1024 * 1024),
        description="Log file size before rotation, e.g. '10MiB' or '500KB'",
    )
    rotation_count: int = Field(default=5, ge=0)
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'bluestack.services.blob': 'DEBUG'}"
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        """Accept lowercase names and the short 'warn' spelling."""
        if isinstance(v, str):
            v = v.strip().upper()
            if v == "WARN":
                return "WARNING"
        return v

    model_config = ConfigDict(use_enum_values=True)


class BlobServiceConfig(BaseModel):
    """Blob storage service configuration."""
    persist_properties: bool = Field(
        default=True,
        description="Keep content type and metadata in per-blob descriptors",
    )
    rebuild_index: bool = Field(
        default=True,
        description="Index container directories already present at startup",
    )


class BluestackConfig(BaseModel):
    """Main Bluestack configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    data_dir: str = Field(default="./data", description="Base directory for service data")

    enabled_services: List[str] = Field(default_factory=lambda: ["blob"])

    blob: BlobServiceConfig = Field(default_factory=BlobServiceConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError("Version must be in format x.y.z")
        return v

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("data_dir cannot be empty")
        return v

    @field_validator("enabled_services", mode="before")
    @classmethod
    def split_services(cls, v: Any) -> Any:
        """Accept a comma-separated string; blank entries are dropped."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [s.strip() for s in v if isinstance(s, str) and s.strip()]
        return v

    def is_service_enabled(self, name: str) -> bool:
        """Check whether a service is in the enabled list."""
        return name in self.enabled_services

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages Bluestack configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (EDGE_PORT, DATA_DIR, ENABLED_SERVICES, LOG_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[BluestackConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> BluestackConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Nested dictionary of CLI argument overrides

        Returns:
            Validated BluestackConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = BluestackConfig(**config_dict)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        logger.debug(f"Active configuration: {self._config.model_dump_json()}")
        return self._config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, "r") as f:
            if path.suffix in [".yaml", ".yml"]:
                return yaml.safe_load(f) or {}
            elif path.suffix == ".json":
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # An unusable port is ignored rather than failing startup
        if port := os.getenv("EDGE_PORT"):
            try:
                value = int(port)
            except ValueError:
                value = 0
            if 0 < value < 65536:
                config.setdefault("server", {})["port"] = value
            else:
                logger.warning(f"Ignoring invalid EDGE_PORT value: {port!r}")

        if data_dir := os.getenv("DATA_DIR"):
            config["data_dir"] = data_dir

        if services := os.getenv("ENABLED_SERVICES"):
            enabled = [s.strip() for s in services.split(",") if s.strip()]
            if enabled:
                config["enabled_services"] = enabled

        if log_level := os.getenv("LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level
        if log_format := os.getenv("LOG_FORMAT"):
            config.setdefault("logging", {})["format"] = log_format.lower()
        if log_file := os.getenv("LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> BluestackConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> BluestackConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
