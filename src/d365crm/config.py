"""
Configuration management for the D365 CRM proxy
"""

import os
from pathlib import Path
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # D365 connection; routes answer "configuration is missing" while unset
    d365_base_url: Optional[str] = None
    d365_client_id: Optional[str] = None
    d365_client_secret: Optional[str] = None
    d365_tenant_id: Optional[str] = None

    # Optional Configuration
    d365_api_version: str = "v9.2"
    authority_host: str = "https://login.microsoftonline.com"
    token_refresh_skew_seconds: int = 60
    http_timeout: float = 30.0
    app_env: Literal["development", "production", "test"] = "development"
    log_level: str = "info"
    api_key: Optional[str] = None
    signup_source: str = "Website"

    # REST server
    host: str = "0.0.0.0"
    port: int = 8000

    # Implementation Selection (for Dependency Injection)
    auth_provider: Literal["client_credentials", "azure_identity", "mock"] = "client_credentials"
    d365_client: Literal["odata", "mock"] = "odata"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def d365_resource_url(self) -> str:
        """Base URL without a trailing slash; used as the token audience"""
        return (self.d365_base_url or "").rstrip("/")

    @property
    def d365_api_url(self) -> str:
        """Root of the Dataverse Web API"""
        return f"{self.d365_resource_url}/api/data/{self.d365_api_version}"

    @property
    def token_scope(self) -> str:
        return f"{self.d365_resource_url}/.default"

    @property
    def token_url(self) -> str:
        return f"{self.authority_host.rstrip('/')}/{self.d365_tenant_id}/oauth2/v2.0/token"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def missing_credentials(self) -> List[str]:
        """Names of the D365 environment variables that are not set"""
        required = {
            "D365_BASE_URL": self.d365_base_url,
            "D365_CLIENT_ID": self.d365_client_id,
            "D365_CLIENT_SECRET": self.d365_client_secret,
            "D365_TENANT_ID": self.d365_tenant_id,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_d365_configured(self) -> bool:
        return not self.missing_credentials()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings singleton"""
    global _settings
    if _settings is None:
        # Ensure .env is loaded before creating settings
        load_dotenv_if_exists()

        import structlog
        logger = structlog.get_logger(__name__)

        _settings = Settings()
        logger.info(
            "Settings loaded",
            d365_base_url=_settings.d365_base_url,
            auth_provider=_settings.auth_provider,
            d365_client=_settings.d365_client,
            app_env=_settings.app_env,
            cwd=os.getcwd(),
        )
    return _settings


def reset_settings() -> None:
    """Forget the cached settings (tests and config reloads)"""
    global _settings
    _settings = None


def load_dotenv_if_exists() -> None:
    """Load .env file if it exists"""
    from dotenv import load_dotenv

    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)
    else:
        # Try to load from parent directories
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            env_path = parent / ".env"
            if env_path.exists():
                load_dotenv(env_path)
                break


def mask(value: Optional[str], head: int = 6, tail: int = 4) -> Optional[str]:
    """Shorten an identifier for logs, keeping both ends"""
    if not value or len(value) <= head + tail:
        return value
    return f"{value[:head]}...{value[-tail:]}"
