from __future__ import annotations

import os
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_files() -> list[str]:
    env = os.getenv("HP_ENVIRONMENT", "").strip().lower()
    files = [".env"]
    if env and env != "development":
        files.append(f".env.{env}")
    else:
        files.append(".env.local")
    return files


class Settings(BaseSettings):
    app_name: str = "Hiring Pipeline"
    environment: str = "development"

    database_url: str = "sqlite+aiosqlite:///./hirepipe.db"
    database_echo: bool = False
    auto_create_schema: bool = False

    # Audit notes longer than this are rejected, never truncated.
    notes_max_length: int = Field(default=1000, ge=1)
    bulk_max_items: int = Field(default=200, ge=1)
    bulk_concurrency: int = Field(default=8, ge=1)

    redis_url: str = Field(
        default="",
        validation_alias=AliasChoices("HP_REDIS_URL", "REDIS_URL"),
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(env_prefix="HP_", env_file=_env_files(), extra="ignore")


settings = Settings()
