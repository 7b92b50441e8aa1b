"""
PatternShield Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

_DATA_DIR = os.getenv("PATTERNSHIELD_DATA_DIR", ".")


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    VERSION: str = "0.4.0"
    RULESET_VERSION: str = "2024.2"

    # --- OCR Provider ---
    OCR_PROVIDER: str = os.getenv("PATTERNSHIELD_OCR_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # --- Storage ---
    HISTORY_DB_PATH: str = os.getenv(
        "PATTERNSHIELD_HISTORY_DB", os.path.join(_DATA_DIR, "patternshield_history.db")
    )
    COMMUNITY_DB_PATH: str = os.getenv(
        "PATTERNSHIELD_COMMUNITY_DB", os.path.join(_DATA_DIR, "patternshield_community.db")
    )

    # --- Scan History Retention ---
    HISTORY_MAX_ENTRIES: int = int(os.getenv("PATTERNSHIELD_HISTORY_MAX", "100"))
    HISTORY_MAX_AGE_DAYS: int = int(os.getenv("PATTERNSHIELD_HISTORY_DAYS", "7"))

    # --- Community Voting ---
    CONFIRM_THRESHOLD: int = int(os.getenv("PATTERNSHIELD_CONFIRM_THRESHOLD", "5"))
    DISPUTE_LIMIT: float = float(os.getenv("PATTERNSHIELD_DISPUTE_LIMIT", "0.4"))

    # --- Reporter ---
    SEVERITY_THRESHOLD: int = int(os.getenv("PATTERNSHIELD_SEVERITY_THRESHOLD", "3"))
    OVERLAY_DISMISS_SECONDS: int = int(os.getenv("PATTERNSHIELD_OVERLAY_SECONDS", "15"))

    # --- Collaborators ---
    FETCH_TIMEOUT: float = float(os.getenv("PATTERNSHIELD_FETCH_TIMEOUT", "10"))
    COMPANY_LOOKUP_URL: str = os.getenv(
        "PATTERNSHIELD_COMPANY_LOOKUP_URL",
        "https://autocomplete.clearbit.com/v1/companies/suggest",
    )

    # --- Server ---
    HOST: str = os.getenv("PATTERNSHIELD_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PATTERNSHIELD_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("PATTERNSHIELD_CORS_ORIGINS", "*")


settings = Settings()
