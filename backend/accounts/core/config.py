from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Union


class Settings(BaseSettings):
    # MongoDB connection string - <USERNAME> and <PASSWORD> placeholders are
    # substituted from MONGO_USERNAME / MONGO_PASSWORD when present
    # Format: mongodb+srv://<USERNAME>:<PASSWORD>@cluster.example.net
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_USERNAME: str = ""
    MONGO_PASSWORD: str = ""
    MONGO_DB_NAME: str = "accounts"

    # Security settings
    # SECRET_KEY must be changed in production - used to sign JWT tokens
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"  # JWT signing algorithm - must match in security.py
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 90  # 90 days
    JWT_COOKIE_EXPIRE_DAYS: int = 90
    BCRYPT_ROUNDS: int = 12  # bcrypt cost factor, 4 is the lowest bcrypt accepts
    RESET_TOKEN_EXPIRE_MINUTES: int = 60

    # Pagination for list endpoints
    DEFAULT_PAGE_LIMIT: int = 100
    MAX_PAGE_LIMIT: int = 1000

    API_PREFIX: str = "/api/v1"

    # CORS origins - can be string (comma-separated) or list
    CORS_ORIGINS: Union[str, list[str]
                        ] = "http://localhost:5173,http://localhost:3000"

    # development | production | test
    # development adds error details and stack traces to error responses
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Periodic purge of expired password reset tokens
    ENABLE_SCHEDULER: bool = True
    RESET_TOKEN_PURGE_MINUTES: int = 15

    model_config = SettingsConfigDict(
        # Load settings from .env file if it exists
        # Environment variables override defaults
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS string into list"""
        if isinstance(self.CORS_ORIGINS, str):
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        return self.CORS_ORIGINS if isinstance(self.CORS_ORIGINS, list) else []

    def get_mongo_uri(self) -> str:
        """Connection string with credential placeholders filled in"""
        return (
            self.MONGO_URI
            .replace("<USERNAME>", quote_plus(self.MONGO_USERNAME))
            .replace("<PASSWORD>", quote_plus(self.MONGO_PASSWORD))
        )

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
