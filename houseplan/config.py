"""Runtime configuration for the house planner."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DB = Path(__file__).resolve().parent.parent / "houseplan.db"


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="HOUSEPLAN_", env_file=".env", extra="ignore")

    app_name: str = "Kenya House Planner"
    log_level: str = "INFO"
    db_path: Path = DEFAULT_DB
    min_budget: int = Field(default=500_000, description="Smallest budget accepted by the UI.")

    google_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_API_KEY", "HOUSEPLAN_GOOGLE_API_KEY"),
    )
    huggingface_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HUGGING_FACE_ACCESS_TOKEN", "HOUSEPLAN_HUGGINGFACE_TOKEN"),
    )
    gemini_model: str = "gemini-1.5-flash"
    gemini_image_model: str = "gemini-2.0-flash-preview-image-generation"
    huggingface_model: str = "black-forest-labs/FLUX.1-schnell"
    request_timeout: float = Field(default=60.0, description="Seconds before an AI request is abandoned.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root handler once; later calls only adjust the level."""
    global _configured
    level = (level or get_settings().log_level).upper()
    if not _configured:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        _configured = True
    logging.getLogger("houseplan").setLevel(level)
