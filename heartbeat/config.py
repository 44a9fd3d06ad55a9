"""Configuration — process settings from the environment, probe config from YAML."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 10_000


class ConfigError(Exception):
    """Raised when the heartbeat cannot be built from its configuration."""


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Probe definitions (monitor / notify / interval)
    heartbeat_config: str = "heartbeat.yaml"

    # Result sink: SQLite file path or mongodb:// URI
    store_url: str = "data/heartbeat.db"

    # Logging
    log_level: str = "INFO"

    # Email (Mandrill transactional API)
    mandrill_api_key: str = ""
    mandrill_base_url: str = "https://mandrillapp.com/api/1.0"

    # SMS (Twilio)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""


settings = Settings()


class HeartbeatConfig(BaseModel):
    """What to probe, whom to tell, and how long to wait between cycles."""

    monitor: dict[str, list[dict[str, Any]]]
    notify: dict[str, dict[str, Any]]
    interval: int = Field(default=DEFAULT_INTERVAL_MS, ge=0)

    @classmethod
    def parse(cls, raw: HeartbeatConfig | Mapping[str, Any] | None) -> HeartbeatConfig:
        """Validate a raw mapping, raising ConfigError with the first problem found."""
        if isinstance(raw, HeartbeatConfig):
            return raw
        if not raw:
            raise ConfigError("config is missing")
        for section in ("monitor", "notify"):
            if raw.get(section) is None:
                raise ConfigError(f"config.{section} section is missing")
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as e:
            raise ConfigError(f"invalid config: {e}") from e


def load_config(path: str | Path) -> HeartbeatConfig:
    """Read and validate a YAML heartbeat config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e

    if raw is not None and not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    config = HeartbeatConfig.parse(raw)
    logger.info(
        "Loaded %d probe groups and %d notify channels from %s",
        len(config.monitor), len(config.notify), path,
    )
    return config
