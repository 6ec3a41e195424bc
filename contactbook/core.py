"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings
and email configuration.
"""

from functools import lru_cache
from typing import List

from fastapi_mail import ConnectionConfig
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    The instance is frozen: it is read once at startup and passed to the
    components that need it.

    Attributes:
        ENVIRONMENT: ``development``, ``test`` or ``production``.
        PORT: Port the development server listens on.
        DATABASE_URL: Database connection string.
        JWT_SECRET: Secret key used for JWT signing.
        JWT_ALGORITHM: Algorithm used to encode JWT tokens.
        JWT_EXPIRES_IN_MINUTES: Session token lifetime in minutes.
        JWT_COOKIE_EXPIRES_IN_DAYS: Lifetime of the ``jwt`` cookie in days.
        PASSWORD_RESET_EXPIRES_MINUTES: Password reset token lifetime.
        BCRYPT_ROUNDS: Cost factor for password hashing.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        EMAIL_FROM: Sender email address for outgoing emails.
        EMAIL_USERNAME: SMTP username.
        EMAIL_PASSWORD: SMTP password.
        EMAIL_PORT: SMTP server port.
        EMAIL_HOST: SMTP server host.
        EMAIL_SSL_TLS: Connect to the SMTP server over implicit TLS.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    ENVIRONMENT: str = "development"
    PORT: int = 8000
    DATABASE_URL: str = "sqlite:///./contacts.db"
    JWT_SECRET: str = "dev-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN_MINUTES: int = 60 * 24 * 90
    JWT_COOKIE_EXPIRES_IN_DAYS: int = 90
    PASSWORD_RESET_EXPIRES_MINUTES: int = 10
    BCRYPT_ROUNDS: int = 12
    ALLOWED_ORIGINS: List[str] = ["*"]
    EMAIL_FROM: str = "noreply@example.com"
    EMAIL_USERNAME: str = "user"
    EMAIL_PASSWORD: str = "password"
    EMAIL_PORT: int = 465
    EMAIL_HOST: str = "localhost"
    EMAIL_SSL_TLS: bool = True

    @property
    def is_production(self) -> bool:
        """Whether the application runs in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def get_mail_config(settings: Settings) -> ConnectionConfig:
    """Create email configuration for FastAPI-Mail.

    Delivery is suppressed outside production; the mailer logs the
    message instead.

    Args:
        settings (Settings): Application settings.

    Returns:
        ConnectionConfig: Configured email connection settings.
    """

    return ConnectionConfig(
        MAIL_USERNAME=settings.EMAIL_USERNAME,
        MAIL_PASSWORD=settings.EMAIL_PASSWORD,
        MAIL_FROM=settings.EMAIL_FROM,
        MAIL_PORT=settings.EMAIL_PORT,
        MAIL_SERVER=settings.EMAIL_HOST,
        MAIL_STARTTLS=not settings.EMAIL_SSL_TLS,
        MAIL_SSL_TLS=settings.EMAIL_SSL_TLS,
        USE_CREDENTIALS=True,
        SUPPRESS_SEND=0 if settings.is_production else 1,
    )
