"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./history_progress.db"
    sqlite_busy_timeout_ms: int = 5000  # how long a writer waits for a quiz transaction to commit
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "History Progress Engine"
    version: str = "1.0.0"
    slow_request_ms: int = 1000

    # Reading gate
    read_gate_ratio: float = 0.8
    read_ratio_epsilon: float = 0.01  # minimum ratio delta before a scroll update is written

    # Grading
    passing_score: int = 70
    star_tiers: List[Tuple[int, int]] = [(0, 0), (40, 3), (60, 6), (80, 8), (100, 12)]  # (min_score, stars)

    # Attempts and lockout
    base_attempt_allowance: int = 2
    lockout_hours: int = 12
    reset_budget_on_lock: bool = True  # lock forfeits purchased credits as well as the failure count

    # Quiz sessions
    quiz_base_question_count: int = 5
    quiz_bonus_question_max: int = 5
    default_time_per_question_ms: int = 25000
    correct_advance_delay_ms: int = 800

    # Attempt packs
    attempt_pack_enabled: bool = True
    attempt_pack_product_id: str = "attempt-pack-10"
    attempt_pack_default_quantity: int = 10

    # Content files
    quiz_bank_path: Path = _DATA_DIR / "quiz_bank.json"
    curriculum_path: Path = _DATA_DIR / "curriculum.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
