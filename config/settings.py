"""
Configuration & Settings
eSIM Catalog Normalization & Auto-Selection
"""

from pydantic import BaseModel
from typing import Optional
import os


class Settings(BaseModel):
    # App
    APP_NAME: str = "eSIM Catalog Normalization & Auto-Selection"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./esim_catalog.db")

    # AI (OpenAI)
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    AI_MODEL: str = "gpt-4o-mini"
    AI_TEMPERATURE: float = 0.3
    AI_MAX_TOKENS: int = 500
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_MAX_RETRIES: int = 3
    AI_RETRY_BASE_DELAY: float = 1.0
    AI_RETRY_MAX_DELAY: float = 10.0
    AI_CACHE_TTL_HOURS: int = 24

    # Composite scoring
    # Stored platform weights override these; they are renormalized to sum to 100.
    DEFAULT_PRICE_WEIGHT: int = 50
    DEFAULT_QUALITY_WEIGHT: int = 30
    DEFAULT_PROVIDER_WEIGHT: int = 20
    WEIGHTS_CACHE_TTL_SECONDS: int = 300

    # Normalization / grouping
    COMPARISON_TOLERANCE: float = 0.05
    SIMILARITY_THRESHOLD: int = 70
    MAX_ALTERNATIVES: int = 5
    DEFAULT_PROVIDER_MARGIN: str = "15.00"

    # Scheduler
    DEFAULT_SYNC_INTERVAL_MINUTES: int = 60
    SCHEDULER_TICK_SECONDS: int = 60
    SYNC_RETRY_MINUTES: int = 5
    PROVIDER_SYNC_TIMEOUT_SECONDS: float = 600.0
    SCHEDULER_MAX_WORKERS: int = 4
    SCHEDULER_AUTOSTART: bool = os.getenv("SCHEDULER_AUTOSTART", "false").lower() == "true"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000


settings = Settings()
