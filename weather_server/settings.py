import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Cache Configuration
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_max_size: int = Field(default=1000, ge=1, alias="CACHE_MAX_SIZE")
    cache_debug: bool = Field(default=False, alias="CACHE_DEBUG")

    # Request Configuration
    max_retries: int = Field(default=3, ge=0, alias="MAX_RETRIES")
    request_timeout_ms: int = Field(default=30000, gt=0, alias="REQUEST_TIMEOUT_MS")
    retry_base_delay_s: float = Field(default=1.0, ge=0, alias="RETRY_BASE_DELAY_S")

    # Provider Configuration
    noaa_user_agent: str = Field(
        default="(weather-server, weather-server@example.com)",
        alias="NOAA_USER_AGENT",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def request_timeout(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.request_timeout_ms / 1000


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build settings from environment variables (and any .env file)."""
    source = os.environ if environ is None else environ
    return Settings.model_validate(dict(source))
