from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, read from ``OPD_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(env_prefix="OPD_", env_file=".env", extra="ignore")

    app_name: str = "OPD Token Allocation Engine"
    log_level: str = Field("INFO", description="Root logging level")
    default_capacity: int = Field(5, ge=1, description="Capacity used when a slot request omits one")
    max_capacity: int = Field(50, ge=1, description="Largest capacity a slot may be provisioned with")
    max_delay_minutes: int = Field(480, ge=1, description="Largest single delay accepted for a slot")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
