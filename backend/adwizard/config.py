import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/ad_wizard"
    # TLS without certificate checks, for hosted Postgres behind a self-signed proxy
    database_ssl_insecure: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql:// — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    secret_key: str = "change-me-in-production"  # Signs the session cookie
    encryption_key: str = ""  # Fernet key for app secrets / access tokens at rest
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Where the browser reaches this service; the OAuth redirect URI hangs off it
    public_base_url: str = "http://localhost:8000"

    # Facebook Graph API
    graph_api_version: str = "v18.0"
    graph_base_url: str = "https://graph.facebook.com"
    oauth_dialog_base_url: str = "https://www.facebook.com"
    oauth_scope: str = "ads_management,ads_read,business_management"

    # Wizard session cookie
    session_cookie_name: str = "adwizard_session"
    session_max_age_days: int = 7

    # Only read by get_tokens.py
    meta_app_id: str = ""
    meta_app_secret: str = ""

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.public_base_url.startswith("https://"):
                logger.warning("PUBLIC_BASE_URL is not https — Facebook rejects plain-http redirect URIs for live apps.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/oauth-callback"

    @property
    def graph_api_url(self) -> str:
        return f"{self.graph_base_url.rstrip('/')}/{self.graph_api_version}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
