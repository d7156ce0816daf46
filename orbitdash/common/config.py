"""
Application Settings

Settings are read, highest priority first, from:
- constructor arguments
- environment variables (ORBITDASH_*) and a .env file
- an optional YAML file (ORBITDASH_CONFIG, default ./config.yaml)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .logging_setup import get_service_logger

logger = get_service_logger("config")

DEFAULT_CONFIG_PATH = "config.yaml"
DB_FILENAME = "orbitdash.db"
ICONS_DIR_NAME = "icons"


def load_yaml_config(path: str | Path) -> dict:
    """Load a YAML mapping, returning {} when missing or malformed"""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing config {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level is not a mapping")
        return {}
    return data


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source backed by the optional YAML config file"""

    def __init__(self, settings_cls: type[BaseSettings], path: str | Path):
        super().__init__(settings_cls)
        self._data = load_yaml_config(path)

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            name: self._data[name]
            for name in self.settings_cls.model_fields
            if name in self._data
        }


class Settings(BaseSettings):
    """
    Runtime configuration.

    Create a .env file or export variables, e.g.:
    - ORBITDASH_DATA_DIR=/var/lib/orbitdash
    - ORBITDASH_DISK_PATH=/mnt/storage
    - PORT=8080
    """

    model_config = SettingsConfigDict(
        env_prefix="ORBITDASH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Path("./data")
    host: str = "0.0.0.0"
    port: int = Field(
        3001,
        validation_alias=AliasChoices("port", "ORBITDASH_PORT", "PORT"),
    )

    # Sampling
    disk_path: str = "/"
    proc_root: Path = Path("/proc")
    sample_interval_s: float = 1.0
    retention_s: int = 60
    default_window_s: int = 30
    keepalive_s: float = 15.0

    # Icons
    icon_fetch_timeout_s: float = 10.0

    # HTTP
    allowed_origins: list[str] = ["*"]
    static_dir: Path = Path("dist")

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @property
    def icons_dir(self) -> Path:
        return self.data_dir / ICONS_DIR_NAME

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        config_path = os.environ.get("ORBITDASH_CONFIG", DEFAULT_CONFIG_PATH)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls, config_path),
            file_secret_settings,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
