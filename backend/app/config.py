from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import List
import os


class Settings(BaseSettings):
    """Global app settings loaded from environment.
    - Keep defaults light for dev.
    - Override via .env or real env vars.
    """

    APP_NAME: str = "hikma_api"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True

    # سلسلة فارغة تعني العمل بملفات JSON فقط
    MONGODB_URI: str = "mongodb://localhost:27017/survey_db"
    MONGO_CONNECT_RETRIES: int = 3
    MONGO_RETRY_DELAY_SECONDS: float = 5.0
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 10000

    # JSON fallback storage
    DATA_DIR: str = "data"
    SURVEY_FILE: str = "survey_responses.json"
    POSTS_FILE: str = "posts.json"
    CHAT_FILE: str = "chat.json"
    INTERACTIONS_FILE: str = "interactions.json"
    COMMENTS_FILE: str = "comments.json"
    SEED_SAMPLE_POSTS: bool = True

    # Admin / moderation secrets
    ADMIN_USERNAME: str | None = None
    ADMIN_PASSWORD: str | None = None
    ADMIN_PANEL_PASSWORD: str | None = None
    SUBMISSION_PASSWORD: str | None = None

    # JWT settings (admin tokens only)
    JWT_SECRET: str = "hikma_dev_secret"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_TOKEN_EXPIRE_MINUTES: int = 120  # ساعتان

    # Logging
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    # Raw CORS string from env (comma-separated); parsed via cors_origins property
    CORS_ORIGINS: str | None = None

    # slowapi limit strings
    GLOBAL_RATE_LIMIT: str = "100/minute"
    ADMIN_RATE_LIMIT: str = "20/15 minutes"

    # Counter cache
    COUNTER_CACHE_TTL_SECONDS: float = 5.0
    COUNTER_RATE_LIMIT: int = 10
    COUNTER_ANALYTICS_RATE_LIMIT: int = 5
    COUNTER_WINDOW_SECONDS: float = 60.0
    COUNTER_REFRESH_TIMEOUT_SECONDS: float = 5.0
    COUNTER_JUMP_WARNING: int = 100
    COUNTER_PRUNE_MINUTES: int = 5

    # Chat
    CHAT_MESSAGE_TTL_DAYS: int = 3
    CHAT_LOG_CAP: int = 1000
    CHAT_RECENT_LIMIT: int = 100
    CHAT_IDLE_MINUTES: int = 5
    CHAT_EXPIRY_SWEEP_MINUTES: int = 60
    CHAT_IDLE_SWEEP_MINUTES: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origins(self) -> List[str]:
        """Return CORS origins as a list, parsing comma-separated env string."""
        raw = self.CORS_ORIGINS or os.getenv("CORS_ORIGINS", "") or ""
        return [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    @property
    def data_dir(self) -> Path:
        return Path(self.DATA_DIR)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
