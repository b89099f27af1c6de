from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Pub Quiz League"
    DATABASE_URL: str = "sqlite:///./pubquiz.db"
    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    TRIVIA_API_URL: str = "https://opentdb.com/api.php"
    TRIVIA_TIMEOUT: float = 10.0

    # Seeder bootstrap account
    ADMIN_NAME: str = "Quizmaster"
    ADMIN_EMAIL: str = "admin@pubquiz.local"
    ADMIN_PASSWORD: str = "change-me-please"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
