"""
Token Provider Factory

Creates token provider instances based on configuration.
"""

from typing import Any, Dict, List
import structlog

from ..config import Settings
from ..auth import ITokenProvider, TokenCache, AzureCredentialTokenProvider

logger = structlog.get_logger(__name__)


class MockTokenProvider(ITokenProvider):
    """Mock token provider for local runs and tests"""

    def __init__(self) -> None:
        self.mock_token = "mock_bearer_token_12345"
        self.calls = 0

    async def get_token(self) -> str:
        """Returns mock token"""
        self.calls += 1
        return self.mock_token

    async def validate_credentials(self) -> bool:
        """Always returns True for mock"""
        return True

    def clear(self) -> None:
        self.calls = 0

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "type": "mock",
            "mock_token": self.mock_token[:10] + "...",
            "status": "active",
        }


class AuthProviderFactory:
    """Factory for creating token providers"""

    @staticmethod
    def create(settings: Settings) -> ITokenProvider:
        """
        Create token provider based on configuration.

        Args:
            settings: Application settings

        Returns:
            Configured token provider instance

        Raises:
            ValueError: If provider type is not supported
        """
        provider_type = settings.auth_provider.lower()

        logger.info("Creating token provider", provider_type=provider_type)

        if provider_type == "client_credentials":
            return TokenCache(settings)
        elif provider_type == "azure_identity":
            return AzureCredentialTokenProvider(settings)
        elif provider_type == "mock":
            return MockTokenProvider()
        else:
            raise ValueError(f"Unsupported auth provider: {provider_type}")

    @staticmethod
    def get_available_providers() -> List[str]:
        """Get list of available token provider types"""
        return ["client_credentials", "azure_identity", "mock"]
