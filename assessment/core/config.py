from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Timed Assessment Engine"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change-me"

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./assessment.db"
    TEST_DATABASE_URL: Optional[str] = None

    TESTING: bool = False
    LOG_DIR: str = "logs"

    # Countdown and expiry
    COUNTDOWN_TICK_SECONDS: int = 1
    EXPIRY_SWEEP_SECONDS: int = 30
    RESCORE_SWEEP_SECONDS: int = 300

    # Answer buffer flush retries
    FLUSH_MAX_RETRIES: int = 3
    FLUSH_BACKOFF_SECONDS: float = 0.5

    # Percentage of a lesson that must be watched before it counts as completed
    LESSON_COMPLETION_THRESHOLD: int = 90

    class Config:
        env_file = ".env"

settings = Settings()
