from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()  # load .env file


class Settings(BaseSettings):
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    SUPABASE_STORAGE_BUCKET: str = "course-files"

    DAILY_API_KEY: Optional[str] = None
    DAILY_API_BASE: str = "https://api.daily.co/v1"
    DAILY_TIMEOUT_SECONDS: float = 10.0

    SESSION_COOKIE_NAME: str = "ba_session"
    SESSION_TTL_DAYS: int = 14
    COOKIE_SECURE: bool = False
    MEETING_TOKEN_TTL_HOURS: int = 4

    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
