from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./cgu_connect.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Messaging policy
    # When False, image/video messages without media_url are stored with a null reference
    REQUIRE_MEDIA_URL: bool = False
    # Minutes after creation during which a sender may unsend; 0 disables the limit
    UNSEND_WINDOW_MINUTES: int = 30
    MESSAGES_PAGE_LIMIT: int = 50

    # Credentials
    BCRYPT_ROUNDS: int = 10

    # Development only: enables DELETE /reset-database
    ALLOW_RESET: bool = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
