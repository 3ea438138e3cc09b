"""
Application settings.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (two levels up from authflow/core/settings.py)
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Process-wide settings. Immutable once constructed."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # App
    app_name: str = Field(
        default="authflow",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "APP_DEBUG"),
        description="Enable debug mode"
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "ENV", "APP_ENV"),
        description="Application environment (development, staging, production)"
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "AUTH_LOG_LEVEL"),
        description="loguru level"
    )
    log_dir: Optional[str] = Field(
        default="logs",
        validation_alias=AliasChoices("LOG_DIR", "AUTH_LOG_DIR"),
        description="Directory for rotating log files; empty disables file logging"
    )

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        validation_alias=AliasChoices("CORS_ORIGINS", "CORS_ALLOWED_ORIGINS"),
        description="Allowed CORS origins (comma-separated string or JSON array)"
    )

    # URLs
    base_url: str = Field(
        default="http://localhost:8000/api/v1/auth",
        validation_alias=AliasChoices("AUTH_BASE_URL", "BASE_URL"),
        description="Public URL of the auth endpoints (error/signin pages and callbacks hang off it)"
    )
    site: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("AUTH_SITE", "SITE_URL", "FRONTEND_URL"),
        description="Site root; default redirect after sign in"
    )
    pages_new_user: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_PAGES_NEW_USER", "PAGES_NEW_USER"),
        description="Landing page for first-time users"
    )
    pages_error: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_PAGES_ERROR", "PAGES_ERROR"),
        description="Custom error page (defaults to {base_url}/error)"
    )
    pages_signin: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_PAGES_SIGNIN", "PAGES_SIGNIN"),
        description="Custom sign-in page (defaults to {base_url}/signin)"
    )

    # Secrets / JWT
    secret_key: str = Field(
        ...,
        validation_alias=AliasChoices("SECRET_KEY", "JWT_SECRET_KEY", "AUTH_SECRET_KEY"),
        description="Signing key for session JWTs and OAuth state bindings (REQUIRED)"
    )
    algorithm: str = Field(
        default="HS256",
        validation_alias=AliasChoices("JWT_ALGORITHM", "AUTH_ALGORITHM"),
        description="JWT signing algorithm"
    )

    # Session
    session_jwt: bool = Field(
        default=True,
        validation_alias=AliasChoices("AUTH_SESSION_JWT", "SESSION_JWT"),
        description="Issue signed JWT sessions (True) or opaque server-side sessions (False)"
    )
    session_max_age: int = Field(
        default=30 * 24 * 60 * 60,  # 30 days
        validation_alias=AliasChoices("AUTH_SESSION_MAX_AGE", "SESSION_MAX_AGE"),
        description="Session lifetime in seconds"
    )
    email_token_max_age: int = Field(
        default=24 * 60 * 60,  # 24 hours
        validation_alias=AliasChoices("AUTH_EMAIL_TOKEN_MAX_AGE", "EMAIL_TOKEN_MAX_AGE"),
        description="Default lifetime of email sign-in links in seconds"
    )
    nonce_max_age: int = Field(
        default=15 * 60,  # 15 minutes
        validation_alias=AliasChoices("AUTH_NONCE_MAX_AGE", "NONCE_MAX_AGE"),
        description="Lifetime of the SSO nonce / OAuth state binding cookie in seconds"
    )

    # Account linking
    allow_registration: bool = Field(
        default=True,
        validation_alias=AliasChoices("AUTH_ALLOW_REGISTRATION", "ALLOW_REGISTRATION"),
        description="Create users on first sign in"
    )
    auto_link_by_email: bool = Field(
        default=False,
        validation_alias=AliasChoices("AUTH_AUTO_LINK_BY_EMAIL", "AUTO_LINK_BY_EMAIL"),
        description="Link a new provider account to an existing user with the same email"
    )

    # Collaborators
    collaborator_timeout: float = Field(
        default=10.0,
        validation_alias=AliasChoices("AUTH_COLLABORATOR_TIMEOUT", "COLLABORATOR_TIMEOUT"),
        description="Timeout in seconds for adapter, hook and provider calls"
    )
    providers_config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_PROVIDERS_CONFIG", "PROVIDERS_CONFIG_PATH"),
        description="YAML file with provider definitions"
    )

    # Cookies
    session_cookie_name: str = Field(
        default="authflow.session-token",
        validation_alias=AliasChoices("SESSION_COOKIE_NAME", "AUTH_COOKIE_NAME"),
        description="Session cookie name"
    )
    callback_url_cookie_name: str = Field(
        default="authflow.callback-url",
        validation_alias=AliasChoices("CALLBACK_URL_COOKIE_NAME",),
        description="Cookie holding the callback URL between sign in and callback"
    )
    nonce_cookie_name: str = Field(
        default="authflow.nonce-hash",
        validation_alias=AliasChoices("NONCE_COOKIE_NAME",),
        description="Cookie holding the SSO nonce binding"
    )
    state_cookie_name: str = Field(
        default="authflow.state-hash",
        validation_alias=AliasChoices("STATE_COOKIE_NAME",),
        description="Cookie holding the OAuth state binding"
    )
    cookie_domain: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("COOKIE_DOMAIN", "AUTH_COOKIE_DOMAIN"),
        description="Cookie domain (e.g. '.example.com')"
    )
    cookie_secure: bool = Field(
        default=False,
        validation_alias=AliasChoices("COOKIE_SECURE", "AUTH_COOKIE_SECURE"),
        description="Cookie Secure flag (always on in production)"
    )
    cookie_samesite: Literal["lax", "strict", "none"] = Field(
        default="lax",
        validation_alias=AliasChoices("COOKIE_SAMESITE", "AUTH_COOKIE_SAMESITE"),
        description="Cookie SameSite attribute"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        elif isinstance(v, list):
            return v
        else:
            return []

    @field_validator("base_url", "site")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @computed_field
    @property
    def cookie_secure_effective(self) -> bool:
        """Secure cookies are forced in production."""
        if self.environment == "production":
            return True
        return self.cookie_secure

    @property
    def error_page(self) -> str:
        return self.pages_error or f"{self.base_url}/error"

    @property
    def signin_page(self) -> str:
        return self.pages_signin or f"{self.base_url}/signin"


@lru_cache
def get_settings() -> Settings:
    """Settings loaded from the environment (cached)."""
    return Settings()
