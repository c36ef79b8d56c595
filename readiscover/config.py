"""
config.py
-----------
Typed configuration loader for environment variables and constants.
This centralizes settings so other modules can import a single authoritative source.
"""
from __future__ import annotations
import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    openrouter_base_url: str = Field(default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"))
    summarizer_model: str = Field(default_factory=lambda: os.getenv("SUMMARIZER_MODEL", "anthropic/claude-opus-4.5"))
    dialogue_model: str = Field(default_factory=lambda: os.getenv("DIALOGUE_MODEL", "anthropic/claude-sonnet-4.5"))
    summarizer_temperature: float = Field(default_factory=lambda: float(os.getenv("SUMMARIZER_TEMPERATURE", "0.5")))
    dialogue_temperature: float = Field(default_factory=lambda: float(os.getenv("DIALOGUE_TEMPERATURE", "0.8")))
    app_referer: str = Field(default_factory=lambda: os.getenv("APP_REFERER", "https://readiscover.7vik.io"))
    app_title: str = Field(default_factory=lambda: os.getenv("APP_TITLE", "Readiscover"))

    arxiv_source_url: str = Field(default_factory=lambda: os.getenv("ARXIV_SOURCE_URL", "https://arxiv.org/src/{arxiv_id}"))
    http_timeout: float = Field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT", "60")))
    fetch_attempts: int = Field(default_factory=lambda: int(os.getenv("FETCH_ATTEMPTS", "3")))

    session_timeout_seconds: float = Field(default_factory=lambda: float(os.getenv("SESSION_TIMEOUT_SECONDS", str(30 * 60))))
    paper_excerpt_chars: int = Field(default_factory=lambda: int(os.getenv("PAPER_EXCERPT_CHARS", "5000")))
    fallback_title: str = Field(default_factory=lambda: os.getenv("FALLBACK_TITLE", "Research Paper"))

    dev_no_llm: bool = Field(default_factory=lambda: _env_flag("DEV_NO_LLM"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())


settings = Settings()
