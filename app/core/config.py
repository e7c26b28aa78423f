"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "SubTrack - Subscription Tracker"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    # SQLite for local dev, PostgreSQL (postgresql+psycopg2://...) in production
    DATABASE_URL: str = "sqlite:///./subtrack.db"

    # API Settings
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]
    FRONTEND_URL: str = "http://localhost:5173"

    # Auth
    AUTH_TOKEN_EXPIRE_DAYS: int = 7

    # Gmail OAuth 2.0 (web application client)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:5173/email/callback"

    # Email import
    IMPORT_LOOKBACK_MONTHS: int = 3
    IMPORT_MAX_RESULTS: int = 100  # First page only
    IMPORT_FETCH_BATCH_SIZE: int = 5
    IMPORT_FETCH_PAUSE_SECONDS: float = 1.0
    IMPORT_PROGRESS_INTERVAL: int = 10
    IMPORT_WORKERS: int = 2
    IMPORT_REAP_STUCK_ON_STARTUP: bool = True
    MAIL_REQUEST_TIMEOUT_SECONDS: int = 30
    SEED_DEFAULT_TEMPLATES: bool = True

    # LangGraph agent service (optional)
    LANGGRAPH_API_URL: str = ""
    LANGGRAPH_API_KEY: str = ""
    LANGGRAPH_EMAIL_AGENT_ID: str = ""
    LANGGRAPH_CHAT_AGENT_ID: str = ""
    LANGGRAPH_TIMEOUT_SECONDS: float = 15.0

    # Subscription date rollover job
    SUBSCRIPTION_JOB_ENABLED: bool = True
    SUBSCRIPTION_JOB_HOUR_UTC: int = 2

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
