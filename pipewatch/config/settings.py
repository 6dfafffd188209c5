from __future__ import annotations

import re

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pipewatch.constants import DB_SCHEMA

# Load .env once at module import so every BaseSettings subclass sees the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "pipewatch"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')"
            raise ValueError(msg)
        return v


class TelegramSettings(BaseSettings):
    """Telegram notification channel settings. Env vars prefixed with TELEGRAM_."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: str  # required: fail fast if missing
    chat_id: int
    message_max_length: int = 4096


class AWSSettings(BaseSettings):
    """AWS client settings. Env vars prefixed with AWS_."""

    model_config = SettingsConfigDict(env_prefix="AWS_")

    region: str = "eu-west-1"


class WatchSettings(BaseSettings):
    """Event sequencing settings. Env vars prefixed with WATCH_."""

    model_config = SettingsConfigDict(env_prefix="WATCH_")

    expected_source: str = "aws.codepipeline"
    lock_retry_interval_s: float = Field(0.5, gt=0)
    lock_max_attempts: int = Field(120, ge=1)
    project_pattern: str = r"codepipeline-(.*)"
    console_region: str = "eu-west-1"

    @field_validator("project_pattern")
    @classmethod
    def _validate_project_pattern(cls, v: str) -> str:
        try:
            compiled = re.compile(v)
        except re.error as e:
            raise ValueError(f"WATCH_PROJECT_PATTERN is not a valid regex: {e}") from e
        if compiled.groups < 1:
            raise ValueError(
                f"WATCH_PROJECT_PATTERN must capture the project name in a group (got '{v}')"
            )
        return v


class GatewaySettings(BaseSettings):
    """Ingress server settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 8080


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    log_json: bool = True
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on missing required fields."""
    return Settings()
