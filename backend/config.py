from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    gemini_api_key: str = ""  # empty → canned narration only
    narrator_model: str = "gemini-2.5-flash"
    narration_timeout_seconds: float = 8.0
    narration_temperature: float = 1.0

    # Setup rules
    min_players: int = 4
    default_mafia_count: int = 1
    default_doctor_count: int = 1
    default_detective_count: int = 1

    # Sessions untouched this long are dropped when a new one is created
    session_idle_minutes: int = 240

    # CORS origins: set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    # Extra origin (e.g. the LAN address of the host's laptop); appended to allowed_origins
    extra_origin: str = ""
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
