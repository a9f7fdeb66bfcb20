# backend configuration
# loads env vars for mongodb, jwt, gemini, live refresh and store retry

import os
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent.parent / ".env")


class Settings(BaseSettings):
    # mongodb
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "moodflow_db")
    # multi-document transactions need a replica set
    MONGODB_TRANSACTIONS: bool = False

    # jwt auth
    JWT_SECRET: str = os.getenv("JWT_SECRET", "moodflow-dev-secret-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # gemini (for ai summaries)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    SUMMARY_WINDOW_DAYS: int = 30

    # cors
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # live channel: max staleness of a professional's dashboard
    LIVE_REFRESH_SECONDS: float = 15.0

    # boundary retry for transient store failures
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.5

    # paging
    AUDIT_LOG_PAGE_SIZE: int = 20
    NOTIFICATION_PAGE_SIZE: int = 50

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
