"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── MongoDB ──────────────────────────────────────────
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "analytics"
    mongo_server_selection_timeout_ms: int = 3000

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic | gemini
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    llm_timeout_seconds: float = 60.0

    # ── Query compiler ───────────────────────────────────
    query_timeout_ms: int = 30_000
    summary_sample_size: int = 5
    category_zoom_threshold: int = 10
    # Collections whose sampled schema is not trusted: every string-to-date
    # conversion on a field reference is removed for them.
    forced_conversion_collections: list[str] = []

    # ── Recommendation cache ─────────────────────────────
    recommendation_ttl_seconds: float = 1800.0
    recommendation_sweep_seconds: float = 300.0
    recommendation_max_entries: int = 512

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
