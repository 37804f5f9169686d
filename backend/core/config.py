from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Pocket Rewards API"
    VERSION: str = "1.1.7"
    DEBUG: bool = False

    # Security settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Shared with the mobile client; signs ad completion callbacks
    AD_REWARD_SECRET: str

    # Admin settings
    ADMIN_ROLE: str = "admin"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "capacitor://localhost",
        "https://localhost",
    ]

    # API settings
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # Storage. USE_MONGO=false runs on the in-memory store (local dev only)
    USE_MONGO: bool = True
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "pocket_rewards"
    TRANSACTION_MAX_ATTEMPTS: int = 25

    # Day boundary. Minutes, JavaScript getTimezoneOffset() convention (-540 == UTC+9)
    DEFAULT_TIMEZONE_OFFSET_MINUTES: int = -540

    # Only enable behind a proxy that overwrites X-Forwarded-For
    TRUST_FORWARDED_FOR: bool = False

    # Ranking snapshot job
    RANKINGS_SCHEDULER_ENABLED: bool = True
    RANKINGS_INTERVAL_SECONDS: int = 3600
    RANKINGS_SIZE: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()

# Validate required settings
if not settings.SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable is required")

if not settings.AD_REWARD_SECRET:
    raise ValueError("AD_REWARD_SECRET environment variable is required")

if settings.USE_MONGO and not settings.MONGO_URI:
    raise ValueError("MONGO_URI environment variable is required when USE_MONGO=true")
