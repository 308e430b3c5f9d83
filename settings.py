from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    PROJECT_NAME: str = "Prompt Hub API"
    VERSION: str = "0.1.0"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Hosted store (Supabase)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None

    # Local device storage (theme preference)
    STORAGE_PATH: str = ".prompthub/storage.json"
    DEFAULT_SYSTEM_THEME: str = "dark"

    # UI behaviour
    SEARCH_THRESHOLD: float = 0.35
    SAVED_INDICATOR_SECONDS: float = 1.4
    PAGE_SIZE: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        case_sensitive = True
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()
