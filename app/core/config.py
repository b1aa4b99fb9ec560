from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"  # local | development | production
    APP_NAME: str = "tour-booking-api"

    JWT_SECRET: str = "change_me_jwt"
    JWT_TTL_DAYS: int = 90
    JWT_COOKIE_NAME: str = "jwt"
    JWT_COOKIE_SECURE: bool = False
    PASSWORD_RESET_TTL_MINUTES: int = 10

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    DATABASE_URL: str
    REDIS_URL: str = ""

    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    API_RATE_LIMIT_ENABLED: bool = True
    API_RATE_LIMIT: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 3600
    TRUST_PROXY_HEADERS: bool = False  # honour X-Forwarded-For only behind a trusted proxy

    EMAIL_PROVIDER: str = "dummy"  # dummy | smtp | service
    EMAIL_FROM: str = "Tour Booking <hello@example.com>"
    EMAIL_SERVICE_URL: str = "http://email-service:8010"
    INTERNAL_SERVICE_TOKEN: str = "change_me_internal_service_token"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    WELCOME_EMAIL_SUBJECT: str = "Welcome to the Tour Booking family!"
    PASSWORD_RESET_EMAIL_SUBJECT: str = "Your password reset token (valid for {minutes} minutes)"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.APP_ENV in {"local", "development"}

settings = Settings()
