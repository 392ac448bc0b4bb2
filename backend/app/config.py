"""
backend/app/config.py

Purpose:
    Central settings loading for the FutManager API.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str
    MONGO_DB: str = "futmanager"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after REFRESH_TOKEN_EXPIRE_DAYS
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000,https://futmanager.pages.dev"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # JWT settings
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Seed admin user (leave empty to skip seeding)
    SEED_ADMIN_EMAIL: str = ""
    SEED_ADMIN_PASSWORD: str = ""
    SEED_ADMIN_NAME: str = "Administrator"

    # Audit trail
    AUDIT_ENABLED: bool = True
    AUDIT_TRUNCATE_IP: bool = False  # GDPR mode: store 192.168.1.xxx instead of the full address
    AUDIT_MAX_BODY_CHARS: int = 4000

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
