# mathword/config.py
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_MODELS = ["gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash"]
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Runtime configuration, read from environment variables and an optional `.env` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # ========== AI correction ==========
    gemini_api_key: str = ""
    gemini_model: str = GEMINI_MODELS[0]
    gemini_api_base: str = GEMINI_API_BASE
    gemini_timeout: float = 180.0
    ai_chunk_size: int = Field(15000, gt=500)
    ai_concurrency: int = Field(3, ge=1)

    # ========== Formulas & document ==========
    math_max_depth: int = Field(64, ge=1)
    doc_font_name: str = "Times New Roman"
    doc_font_size: float = 12.0
    doc_title: str = "TÀI LIỆU CHUYỂN ĐỔI TỪ PDF"

    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attaches a single console handler to the package logger."""
    logger = logging.getLogger("mathword")
    logger.setLevel((level or get_settings().log_level).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
