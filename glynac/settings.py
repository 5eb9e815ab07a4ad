import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # API Configuration
    api_base_url: str = Field(
        default="http://localhost:3000/api", alias="GLYNAC_API_BASE_URL"
    )
    api_timeout: float = Field(default=30.0, alias="GLYNAC_API_TIMEOUT")
    max_retries: int = Field(default=3, alias="GLYNAC_MAX_RETRIES")
    retry_delay: float = Field(default=1.0, alias="GLYNAC_RETRY_DELAY")

    # Query Cache Configuration
    query_stale_time: float = Field(default=300.0, alias="GLYNAC_QUERY_STALE_TIME")
    query_gc_time: float = Field(default=600.0, alias="GLYNAC_QUERY_GC_TIME")
    cache_max_size: int = Field(default=200, alias="GLYNAC_CACHE_MAX_SIZE")

    # Session Configuration
    session_file: str | None = Field(default=None, alias="GLYNAC_SESSION_FILE")
    token_refresh_minutes: int = Field(
        default=15, alias="GLYNAC_TOKEN_REFRESH_MINUTES"
    )
    session_sync_seconds: int = Field(default=5, alias="GLYNAC_SESSION_SYNC_SECONDS")

    # Demo credentials for main.py
    email: str = Field(default="", alias="GLYNAC_EMAIL")
    password: str = Field(default="", alias="GLYNAC_PASSWORD")

    debug: bool = Field(default=False, alias="GLYNAC_DEBUG")


def load_settings() -> Settings:
    """Build settings from the process environment (after .env is loaded)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
