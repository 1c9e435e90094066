# lingai/settings/config.py  (Pydantic v2)
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # ---------- Database / auth ----------
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./lingai.db")
    # Dev convenience: create tables on startup instead of running Alembic
    RUN_DB_CREATE_ALL: bool = Field(default=False)
    SECRET: str = Field(default="")
    COOKIE_SECURE: bool = Field(default=False)
    SESSION_LIFETIME_SECONDS: int = Field(default=3600 * 24)

    # ---------- AI provider (OpenAI-compatible REST) ----------
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    TEXT_MODEL: str = Field(default="gpt-4o-mini")
    RECAP_MODEL: str = Field(default="gpt-4o")
    TTS_MODEL: str = Field(default="tts-1-hd")
    IMAGE_MODEL: str = Field(default="dall-e-3")
    IMAGE_SIZE: str = Field(default="1024x1024")
    AI_TIMEOUT_SECONDS: float = Field(default=60.0)

    # ---------- Content store ----------
    BLOB_BACKEND: Literal["local", "r2"] = Field(default="local")
    BLOB_ROOT: str = Field(default="./blobs")
    R2_ACCOUNT_ID: Optional[str] = Field(default=None)
    R2_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    R2_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    R2_BUCKET_NAME: Optional[str] = Field(default=None)

    # ---------- Follow-on generation ----------
    AUDIO_REQUEST_DELAY_SECONDS: float = Field(default=0.5)
    AUTO_GENERATE_AUDIO: bool = Field(default=True)
    AUTO_GENERATE_COMIC: bool = Field(default=True)
    AUTO_GENERATE_RECAP: bool = Field(default=True)
    # 0 disables the periodic retry sweep
    RETRY_SWEEP_MINUTES: int = Field(default=30)

    LOG_LEVEL: str = Field(default="INFO")

    # ---------- pydantic-settings config ----------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # allow lower/upper env names
        extra="ignore",
    )


settings = Settings()
