"""Runtime configuration for BasketRec.

All business tuning parameters (rule thresholds, personalization window,
result caps, AI timeouts) are read from the environment with the
``BASKETREC_`` prefix, or from a local ``.env`` file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BASKETREC_",
        env_file=".env",
        extra="ignore",
    )

    PROJECT_NAME: str = "BasketRec"
    LOG_LEVEL: str = "INFO"

    # Rule mining
    MIN_SUPPORT: float = 0.01
    MIN_CONFIDENCE: float = 0.10

    # Personalization
    PERSONALIZATION_TOP_K: int = 3
    PERSONALIZATION_LIMIT: int = 3
    RECENCY_WINDOW_DAYS: float = 30.0
    RECENCY_FLOOR: float = 0.1

    # Merge caps
    DETAIL_VIEW_CAP: int = 3
    CART_VIEW_CAP: int = 6

    # AI provider
    AI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    AI_API_KEY: Optional[str] = None
    AI_MODEL: str = "gpt-4o"
    AI_TEMPERATURE: float = 0.3
    AI_MAX_TOKENS: int = 500
    AI_TIMEOUT_SECONDS: float = 4.0
    AI_MENU_SAMPLE_SIZE: int = 10
    AI_RULE_CONTEXT_SIZE: int = 6
    AI_MAX_SUGGESTIONS: int = 3

    # Whole-request bound for the slowest sub-call
    REQUEST_TIMEOUT_SECONDS: float = 6.0

    # Data files used by the bundled CSV collaborators
    ORDERS_CSV_PATH: str = "data/orders.csv"
    MENU_CSV_PATH: str = "data/menu.csv"
    USER_STATS_CSV_PATH: str = "data/user_item_stats.csv"
    SNAPSHOT_DIR: str = "models"

    SESSION_CACHE_SIZE: int = 1024


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
