from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "fintrack"
    ENV: str = "dev"

    # 기본 SQLite 파일 DB
    # apps/backend/fintrack.sqlite3를 절대경로로 지정하여 CWD에 따른 경로 문제 방지
    _default_db_path = Path(__file__).resolve().parents[2] / "fintrack.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    # uvicorn (python -m fintrack.main)
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"
    DEFAULT_CURRENCY: str = "USD"

    # Receipt scanning (Gemini generateContent API)
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="FINTRACK_", case_sensitive=False)


settings = Settings()
