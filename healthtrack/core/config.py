from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from urllib.parse import quote_plus
from enum import Enum

DEFAULT_SECRET_KEY = "change-me-in-production"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "HealthTrack"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    # Server settings
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # Database - PostgreSQL when POSTGRES_* is configured, local sqlite otherwise
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: Optional[int] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None
    SQLALCHEMY_ECHO: bool = False

    # Security
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Feature flags
    ENABLE_HEALTH_MGMT: bool = True
    ENABLE_BEHAVIOR_TRACKING: bool = True
    ENABLE_MICRO_BEHAVIOR_TRACKING: bool = True
    ENABLE_USER_PROFILES: bool = True

    # Profiles
    PROFILE_COMPLETION_THRESHOLD: int = 80

    # Reminder dispatch (external cron calls the trigger endpoint with this secret)
    HEALTH_REMINDER_CRON_SECRET: Optional[str] = None

    # Analytics cache
    ANALYTICS_CACHE_TTL_SECONDS: int = 300
    ANALYTICS_CACHE_MAX_ENTRIES: int = 1024

    # Requests per minute per user, 0 disables limiting
    RATE_LIMIT_PER_MINUTE: int = 120

    # Seed the health type catalogue on startup when the table is empty
    SEED_HEALTH_TYPES: bool = True

    # --- Validators & Derived Settings ---
    @field_validator("PROFILE_COMPLETION_THRESHOLD")
    @classmethod
    def threshold_in_range(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("PROFILE_COMPLETION_THRESHOLD must be between 1 and 100")
        return v

    @field_validator("HEALTH_REMINDER_CRON_SECRET", mode="before")
    @classmethod
    def blank_secret_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @model_validator(mode="after")
    def _finalize_and_validate(self) -> "Settings":
        # Derive SQLALCHEMY_DATABASE_URI if not provided
        if not self.SQLALCHEMY_DATABASE_URI:
            user = self.POSTGRES_USER
            server = self.POSTGRES_SERVER
            db = self.POSTGRES_DB
            port = self.POSTGRES_PORT or 5432
            if user and server and db:
                safe_user = quote_plus(user)
                if self.POSTGRES_PASSWORD:
                    safe_password = quote_plus(self.POSTGRES_PASSWORD)
                    self.SQLALCHEMY_DATABASE_URI = (
                        f"postgresql://{safe_user}:{safe_password}@{server}:{port}/{db}"
                    )
                else:
                    self.SQLALCHEMY_DATABASE_URI = (
                        f"postgresql://{safe_user}@{server}:{port}/{db}"
                    )
            else:
                self.SQLALCHEMY_DATABASE_URI = "sqlite:///./healthtrack.db"

        if self.is_production:
            if self.SECRET_KEY == DEFAULT_SECRET_KEY:
                raise ValueError("SECRET_KEY must be set in production")
            if self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
                raise ValueError("Production should not use a sqlite database")

        return self

    # Environment-specific properties
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    @property
    def is_staging(self) -> bool:
        return self.ENVIRONMENT == Environment.STAGING

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def is_sqlite(self) -> bool:
        return self.SQLALCHEMY_DATABASE_URI.startswith("sqlite")

    @property
    def cors_origins_development(self) -> List[str]:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

    @property
    def cors_origins_production(self) -> List[str]:
        return [
            "https://healthtrack.app",
            "https://www.healthtrack.app",
        ]

    @property
    def allowed_cors_origins(self) -> List[str]:
        if self.is_development:
            return self.cors_origins_development
        elif self.is_staging:
            return self.cors_origins_development + self.cors_origins_production
        else:  # production
            return self.cors_origins_production

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')


settings = Settings()
