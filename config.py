"""
Application configuration.

Values are read from the environment (and a local .env file when present)
once, and exposed through ``get_settings()``.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent

RANKING_POLICIES = ("competition", "positional")


class Settings:
    """Central configuration loaded from environment variables."""

    def __init__(self, env_path: Optional[str] = None):
        env_file = Path(env_path) if env_path else PROJECT_ROOT / ".env"
        if env_file.exists():
            load_dotenv(dotenv_path=str(env_file))

        # ── Database ──
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./results.db")

        # ── Auth ──
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
        self.JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440")
        )

        # ── Results ──
        self.RANKING_POLICY: str = os.getenv("RANKING_POLICY", "competition").strip().lower()
        if self.RANKING_POLICY not in RANKING_POLICIES:
            raise ValueError(
                f"RANKING_POLICY must be one of {', '.join(RANKING_POLICIES)}, "
                f"got {self.RANKING_POLICY!r}"
            )
        self.TOP_STUDENTS_LIMIT: int = int(os.getenv("TOP_STUDENTS_LIMIT", "10"))

        # ── Pagination ──
        self.DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
        self.MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "200"))

        # ── HTTP ──
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]

        # ── Logging ──
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide Settings instance."""
    return Settings()
