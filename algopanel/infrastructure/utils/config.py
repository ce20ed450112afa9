"""Configuration management for the operator panel.

Rules:
- YAML provides defaults for non-secret config (engine URL, poll intervals).
- Secrets (login password, etc.) come from .env / environment variables and must override YAML.
- We do NOT inject YAML into os.environ.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Remote trading engine endpoint."""

    base_url: str = Field(default="http://localhost:8000", description="Engine HTTP base URL")
    request_timeout_seconds: float = Field(default=5.0, gt=0, le=60)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = str(v).strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class PollingConfig(BaseModel):
    status_interval_seconds: float = Field(default=5.0, ge=1, le=300)
    trades_interval_seconds: float = Field(default=5.0, ge=1, le=300)
    pnl_interval_seconds: float = Field(default=5.0, ge=1, le=300)


class SessionConfig(BaseModel):
    """Login credentials and optional token file shared by CLI invocations."""

    token_path: str = Field(default="data/session.json", description="Empty string keeps the token in memory only")
    username: str = Field(default="")
    password: str = Field(default="")


class PanelConfig(BaseSettings):
    """Main configuration class for the panel.

    YAML is parsed as base config, then env overrides are re-applied for secrets.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    engine: EngineConfig = Field(default_factory=EngineConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(v).upper() not in valid:
            raise ValueError(f"Log level must be one of: {sorted(valid)}")
        return str(v).upper()

    @property
    def token_file(self) -> Optional[Path]:
        return Path(self.session.token_path) if self.session.token_path else None

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "PanelConfig":
        """Load configuration from YAML without polluting environment.

        Steps:
        1) Parse YAML -> base config dict
        2) Validate into model
        3) Apply env overrides (SESSION__PASSWORD, etc.) on top
        """
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        return cls._from_mapping(data)

    @classmethod
    def _from_mapping(cls, data: dict) -> "PanelConfig":
        try:
            base = cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}")
        return apply_env_overrides(base)


def apply_env_overrides(base: PanelConfig) -> PanelConfig:
    """Env wins over YAML for the keys an operator sets per machine."""
    updates: dict = {}

    if os.getenv("ENGINE__BASE_URL"):
        updates.setdefault("engine", base.engine.model_dump())["base_url"] = os.getenv("ENGINE__BASE_URL")

    for key in ("username", "password", "token_path"):
        value = os.getenv(f"SESSION__{key.upper()}")
        if value is not None:
            updates.setdefault("session", base.session.model_dump())[key] = value

    if os.getenv("LOG_LEVEL"):
        updates["log_level"] = os.getenv("LOG_LEVEL")

    if not updates:
        return base

    merged = base.model_dump()
    merged.update(updates)
    try:
        return PanelConfig.model_validate(merged)
    except ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")


def load_config(config_path: Optional[Path] = None) -> PanelConfig:
    """Load configuration from YAML + .env (env wins for secrets)."""

    load_dotenv(dotenv_path=Path(".env"))

    if config_path is None:
        possible_paths = [Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml")]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            # A panel can run against a local engine with nothing but defaults
            return PanelConfig._from_mapping({})

    return PanelConfig.from_yaml(config_path)
