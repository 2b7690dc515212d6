"""
Dependency Injection Container

Centralized dependency resolution for clean separation of concerns.
"""

from typing import Dict, Any, Optional
import structlog

from .config import Settings, get_settings
from .factories import AuthProviderFactory, ClientFactory, ServiceFactory
from .auth.interface import ITokenProvider
from .client.interface import ID365Client
from .services.crm import ICRMService

logger = structlog.get_logger(__name__)


class DIContainer:
    """
    Dependency Injection Container for managing service dependencies.

    One container holds one token cache per tenant configuration; every
    outbound call made through its client shares that cache.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        token_provider: Optional[ITokenProvider] = None,
        d365_client: Optional[ID365Client] = None,
    ):
        self.settings = settings or get_settings()
        self._services: Dict[str, Any] = {}
        if token_provider is not None:
            self._services["token_provider"] = token_provider
        if d365_client is not None:
            self._services["d365_client"] = d365_client

        logger.info(
            "DI Container initialized",
            auth_provider=self.settings.auth_provider,
            d365_client=self.settings.d365_client,
        )

    async def close(self) -> None:
        """Clean up all dependencies"""
        if "crm_service" in self._services:
            await self._services["crm_service"].close()
        elif "d365_client" in self._services:
            await self._services["d365_client"].close()

        if "token_provider" in self._services:
            await self._services["token_provider"].close()

        self._services.clear()
        logger.info("DI Container closed")

    def get_token_provider(self) -> ITokenProvider:
        """Get token provider instance (lazy initialization)"""
        if "token_provider" not in self._services:
            self._services["token_provider"] = AuthProviderFactory.create(self.settings)
            logger.debug("Token provider created", type=self.settings.auth_provider)
        return self._services["token_provider"]

    def get_d365_client(self) -> ID365Client:
        """Get D365 client instance (lazy initialization)"""
        if "d365_client" not in self._services:
            self._services["d365_client"] = ClientFactory.create(self.settings, self.get_token_provider())
            logger.debug("D365 client created", type=self.settings.d365_client)
        return self._services["d365_client"]

    def get_crm_service(self) -> ICRMService:
        """Get CRM service instance (lazy initialization)"""
        if "crm_service" not in self._services:
            self._services["crm_service"] = ServiceFactory.create_crm_service(
                self.settings, self.get_d365_client(), self.get_token_provider()
            )
            logger.debug("CRM service created")
        return self._services["crm_service"]

    def get_container_info(self) -> Dict[str, Any]:
        """Get container status and dependency information"""
        return {
            "cached_services": list(self._services.keys()),
            "settings": {
                "auth_provider": self.settings.auth_provider,
                "d365_client": self.settings.d365_client,
                "d365_api_url": self.settings.d365_api_url,
                "app_env": self.settings.app_env,
            },
        }
