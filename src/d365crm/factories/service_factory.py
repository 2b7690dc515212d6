"""
Service Factory

Creates service instances using client dependencies.
"""

import structlog
from typing import Optional

from ..auth import ITokenProvider
from ..client import ID365Client
from ..config import Settings
from ..services.crm import ICRMService, CRMService

logger = structlog.get_logger(__name__)


class ServiceFactory:
    """Factory for creating service instances with proper dependency injection"""

    @staticmethod
    def create_crm_service(
        settings: Settings,
        d365_client: ID365Client,
        token_provider: Optional[ITokenProvider] = None,
    ) -> ICRMService:
        """
        Create CRM service with client dependency.

        Args:
            settings: Application settings
            d365_client: Configured D365 client
            token_provider: Token provider, used by the auth check

        Returns:
            Configured CRM service instance
        """
        logger.info("Creating CRM service")
        return CRMService(d365_client, token_provider=token_provider, signup_source=settings.signup_source)
