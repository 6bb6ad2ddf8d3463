import os
from dataclasses import dataclass


@dataclass
class Settings:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # sqlite | firestore
    LEDGER_BACKEND: str = os.getenv("LEDGER_BACKEND", "sqlite")
    DB_PATH: str = os.getenv("DB_PATH", "./ledger.db")
    FIRESTORE_USERS_COLLECTION: str = os.getenv("FIRESTORE_USERS_COLLECTION", "users")
    LEDGER_TX_MAX_ATTEMPTS: int = int(os.getenv("LEDGER_TX_MAX_ATTEMPTS", "5"))
    LEDGER_TX_TIMEOUT_SECONDS: float = float(os.getenv("LEDGER_TX_TIMEOUT_SECONDS", "10"))

    TRIAL_CREDITS: int = int(os.getenv("TRIAL_CREDITS", "5"))

    DEDUP_WINDOW_SECONDS: int = int(os.getenv("DEDUP_WINDOW_SECONDS", "600"))
    DEDUP_SCAN_LIMIT: int = int(os.getenv("DEDUP_SCAN_LIMIT", "20"))

    MEDIA_PLACEHOLDER_PATH: str = os.getenv("MEDIA_PLACEHOLDER_PATH", "./assets/placeholder.mp4")
    MEDIA_OUTPUT_DIR: str = os.getenv("MEDIA_OUTPUT_DIR", "./media")

    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "no-reply@example.com")
    EMAIL_PRIMARY_PROVIDER: str = os.getenv("EMAIL_PRIMARY_PROVIDER", "log")
    EMAIL_FALLBACK_PROVIDER: str = os.getenv("EMAIL_FALLBACK_PROVIDER", "log")

settings = Settings()
