# backend/app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):

    PROJECT_NAME: str = "Pulse Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Database ─────────────────────────────────────────────
    # postgresql+asyncpg://... en prod, sqlite+aiosqlite://... en local/tests
    DATABASE_URL: str = "sqlite+aiosqlite:///./pulse.db"

    # ── JWT (vérification uniquement, émission externe) ──
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # ── Email (SMTP) ─────────────────────────────────────────
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    EMAIL_FROM: str = "noreply@pulse-engine.dev"
    BASE_URL: str = "http://localhost:8000"

    # ── Pulse : scheduler ────────────────────────────────────
    PULSE_SCHEDULER_ENABLED: bool = True
    PULSE_TICK_SECONDS: int = 60
    PULSE_SEND_WINDOW_MINUTES: int = 15
    PULSE_TENANT_CONCURRENCY: int = 4
    PULSE_DISPATCH_CONCURRENCY: int = 8

    # ── Pulse : invitations & agrégats ───────────────────────
    PULSE_INVITE_TTL_DAYS: int = 7
    PULSE_DEFAULT_ANON_THRESHOLD: int = 5
    PULSE_DEFAULT_COHORT_COUNT: int = 5
    PULSE_SUMMARY_DEFAULT_WEEKS: int = 8


    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore'
        )

settings = Settings()
