"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the server and the storage client.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT_S: float = Field(default=2.0)
    REDIS_CONNECT_TIMEOUT_S: float = Field(default=2.0)

    # Reconnect policy: minimum gap between attempts, plus capped exponential backoff
    REDIS_RECONNECT_COOLDOWN_S: float = Field(default=5.0)
    REDIS_RECONNECT_BACKOFF_BASE_S: float = Field(default=1.0)
    REDIS_RECONNECT_BACKOFF_MAX_S: float = Field(default=60.0)

    # Record / auth TTLs (seconds)
    RECORD_TTL_S: int = Field(default=30 * 24 * 3600)  # 30 days
    SESSION_TTL_S: int = Field(default=30 * 24 * 3600)  # 30 days, sliding
    USER_TTL_S: int = Field(default=365 * 24 * 3600)  # 1 year

    # Password hashing cost
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=16)

    RECENT_ASSESSMENTS_LIMIT: int = Field(default=30)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Storage client (device side)
    API_BASE_URL: str = Field(default="http://localhost:8000")
    API_TIMEOUT_S: float = Field(default=10.0)
    # Device-local fallback file; unset means no local storage on this device
    LOCAL_STORE_PATH: Optional[str] = Field(default=".thal_journal/local_store.json")

    # Client cache TTLs
    CACHE_TTL_ASSESSMENT_S: float = Field(default=600)  # 10 minutes
    CACHE_TTL_LIST_S: float = Field(default=120)  # 2 minutes
    CACHE_TTL_HEALTH_S: float = Field(default=30)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
