"""Application configuration using environment variables."""
import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Reference data
    DUNGEON_DATA_URL: str = os.getenv("DUNGEON_DATA_URL", "")
    DUNGEON_DATA_PATH: str = os.getenv("DUNGEON_DATA_PATH", "")
    FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", "10"))
    MONSTER_DATA_PATH: str = os.getenv("MONSTER_DATA_PATH", "")
    SKILL_DATA_PATH: str = os.getenv("SKILL_DATA_PATH", "")

    # Server
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Game Constants
    DEFAULT_BOARD_WIDTH: int = int(os.getenv("DEFAULT_BOARD_WIDTH", "6"))  # 6x5 board
    MECHANICS_MERGE_STRATEGY: str = os.getenv("MECHANICS_MERGE_STRATEGY", "max").lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
