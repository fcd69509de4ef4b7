"""Runtime settings read from the environment (and ``.env``) by pydantic-settings.

Every field maps to an upper-case variable of the same name, e.g.
``AUTH_SECRET`` or ``EMAIL_BACKEND``. Unsafe combinations fail at import time.
"""

from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local docker-compose password; refused when ENVIRONMENT=production
_DEV_DATABASE_PASSWORD = "authflow_dev_password"  # nosec B105

# 32 bytes of entropy as hex or base64 is at least this long
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database: DATABASE_URL wins over the individual parts
    database_url_override: str = Field(
        default="",
        validation_alias=AliasChoices("database_url", "database_url_override"),
    )
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "authflow"
    database_user: str = "authflow_user"
    database_password: str = _DEV_DATABASE_PASSWORD

    # HTTP
    api_host: str = "0.0.0.0"  # nosec B104 (container bind)
    api_port: int = 8000
    # Cookies are credentials, so "*" is rejected below
    allowed_origins: list[str] = ["http://localhost:3000"]
    environment: Literal["development", "test", "production"] = "development"
    log_level: str = "INFO"

    # Session cookie and its signed token
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "authflow"
    auth_audience: str = "authflow"
    auth_cookie_name: str = "authflow.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    session_max_age_days: int = 30

    # Credential sign-in. With detailed errors off, unknown email, social-only
    # account, unverified email and wrong password share one message.
    auth_detailed_login_errors: bool = True
    bcrypt_rounds: int = 12

    # OAuth providers; a provider without a client id is unavailable
    github_client_id: str = ""
    github_client_secret: SecretStr = SecretStr("")
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")

    # Outbound email
    email_backend: Literal["resend", "smtp", "console"] = "console"
    email_from: str = "Authflow <onboarding@resend.dev>"
    email_send_timeout_seconds: float = 8.0
    # Non-production only: deliver every message to this address instead
    email_dev_recipient: str = ""
    resend_api_key: SecretStr = SecretStr("")
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: SecretStr = SecretStr("")
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False

    # Where users land after verification or OAuth
    frontend_url: str = "http://localhost:3000"
    # Public base of this API; verification links point here
    backend_url: str = "http://localhost:8000"

    rate_limit_enabled: bool = True

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def _configuration_errors(self) -> list[str]:
        errors = []
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            errors.append(
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none; "
                "browsers drop SameSite=None cookies that are not Secure."
            )
        if "*" in self.allowed_origins:
            errors.append(
                "ALLOWED_ORIGINS must not contain the '*' wildcard while "
                "credentialed (cookie) requests are allowed."
            )
        if self.session_max_age_days <= 0:
            errors.append(
                f"SESSION_MAX_AGE_DAYS must be positive, got {self.session_max_age_days}."
            )
        if self.email_send_timeout_seconds <= 0:
            errors.append(
                "EMAIL_SEND_TIMEOUT_SECONDS must be positive, "
                f"got {self.email_send_timeout_seconds}."
            )
        return errors

    def _production_errors(self) -> list[str]:
        errors = []
        if (
            not self.database_url_override
            and self.database_password == _DEV_DATABASE_PASSWORD
        ):
            errors.append(
                "DATABASE_PASSWORD is still the development default; "
                "set a real password for production."
            )
        secret = self.auth_secret.get_secret_value()
        if not secret:
            errors.append(
                "AUTH_SECRET must be set in production "
                "(for example: openssl rand -hex 32)."
            )
        elif len(secret) < _MIN_AUTH_SECRET_LENGTH:
            errors.append(
                f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} characters."
            )
        return errors

    @model_validator(mode="after")
    def reject_unsafe_configuration(self) -> "Settings":
        errors = self._configuration_errors()
        if self.is_production:
            errors += self._production_errors()
        if errors:
            raise ValueError(" ".join(errors))
        return self


settings = Settings()
