"""
App configuration: all credentials from environment (no hardcoded secrets).

Load from .env via pydantic_settings. In production, set ENVIRONMENT=production
so required secrets are validated at startup.
"""
from urllib.parse import urlsplit

from pydantic import model_validator
from pydantic_settings import BaseSettings


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings from environment. No defaults for secrets in production."""

    database_url: str = "sqlite:///./surcharge.db"  # Use postgresql://... for production
    environment: str = "development"  # development | production; production validates secrets

    # Credential encryption: one or more Fernet keys, comma-separated, newest first
    encryption_key: str = ""

    # Shopify app credentials
    shopify_api_key: str = ""
    shopify_api_secret: str = ""
    shopify_scopes: str = "read_products,write_script_tags"
    shopify_api_version: str = "2024-01"
    webhook_topics: str = "app/uninstalled"
    provider_timeout_seconds: float = 10.0

    # Public URL of this app (OAuth callback and webhook addresses are built from it)
    app_url: str = "http://localhost:8000"

    # Cross-origin policy
    allowed_origins: str = ""  # static override, comma-separated
    dynamic_origins: bool = True  # derive origins from registered shops

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def scopes(self) -> list[str]:
        return _split_csv(self.shopify_scopes)

    @property
    def topics(self) -> list[str]:
        return _split_csv(self.webhook_topics)

    @property
    def static_origins(self) -> set[str]:
        """Origins always permitted: this app's own origin plus ALLOWED_ORIGINS."""
        origins = {o.rstrip("/") for o in _split_csv(self.allowed_origins)}
        parts = urlsplit(self.app_url)
        if parts.scheme and parts.netloc:
            origins.add(f"{parts.scheme}://{parts.netloc}")
        return origins

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_url.rstrip('/')}/auth/callback"

    @property
    def webhook_address(self) -> str:
        return f"{self.app_url.rstrip('/')}/shopify/webhooks"

    @model_validator(mode="after")
    def validate_production_secrets(self):
        """Fail fast in production if required credentials are missing (key rotation / .env)."""
        if self.environment != "production":
            return self
        if not (self.shopify_api_key and self.shopify_api_secret):
            raise ValueError(
                "In production, SHOPIFY_API_KEY and SHOPIFY_API_SECRET must be set in .env"
            )
        if not self.encryption_key:
            raise ValueError("In production, ENCRYPTION_KEY must be set in .env")
        if not self.app_url.startswith("https://"):
            raise ValueError("In production, APP_URL must be an https:// URL")
        return self


settings = Settings()
