"""
FastAPI dependencies: container lookup, configuration and API key checks
"""

from typing import Optional

from fastapi import Depends, Header, Request

from ..config import Settings
from ..di_container import DIContainer
from ..services.crm import ICRMService
from .responses import ApiError


def get_container(request: Request) -> DIContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("DI container not initialized")
    return container


def get_app_settings(container: DIContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_crm_service(container: DIContainer = Depends(get_container)) -> ICRMService:
    return container.get_crm_service()


def require_d365_config(settings: Settings = Depends(get_app_settings)) -> None:
    if settings.d365_client == "mock":
        return
    missing = settings.missing_credentials()
    if missing:
        raise ApiError(
            500,
            "Dynamics 365 configuration is missing. Please configure "
            f"{', '.join(missing)} environment variables.",
        )


def require_api_key(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    if not settings.api_key:
        return
    if not authorization or not authorization.lower().startswith("bearer "):
        raise ApiError(401, "Access token required")
    if authorization.split(" ", 1)[1].strip() != settings.api_key:
        raise ApiError(403, "Invalid access token")
