"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from jellyhook.utils.platform import get_config_dir, get_data_dir


class DeliveryConfig(BaseModel):
    timeout: float = 10.0
    chat_marker: str = "discord.com/api/webhooks"
    # Reference behavior records any returned response as delivered
    non_2xx_is_failure: bool = False
    user_agent: str = "jellyhook/0.1"


class BusConfig(BaseModel):
    max_queue_size: int = 256
    workers: int = 4


class SummaryConfig(BaseModel):
    top_limit: int = 5


class ServerConfig(BaseModel):
    enabled: bool = True
    bind: str = "127.0.0.1"
    port: int = 8430


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JELLYHOOK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    bus: BusConfig = Field(default_factory=BusConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    data_dir: str = ""
    database: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    def get_database_path(self) -> Path:
        if self.database:
            return Path(self.database)
        return self.get_data_dir() / "jellyhook.db"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("JELLYHOOK_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # YAML values are init kwargs; pydantic-settings gives them priority over env
    return Settings(**yaml_data)
