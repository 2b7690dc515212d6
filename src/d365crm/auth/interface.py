"""
Token Provider Interface

Defines contract for bearer-token providers (client credentials, azure-identity, mock)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class TokenState:
    """Cached bearer token and the epoch second at which it stops being reused"""

    access_token: Optional[str] = None
    expires_at: Optional[float] = None

    def is_valid(self, now: float) -> bool:
        return (
            self.access_token is not None
            and self.expires_at is not None
            and now < self.expires_at
        )


class ITokenProvider(ABC):
    """Interface for token providers"""

    @abstractmethod
    async def get_token(self) -> str:
        """
        Get a bearer token for the D365 Web API.

        Returns the cached token while it is still valid, otherwise refreshes it.

        Raises:
            AuthError: If the identity provider cannot issue a token
        """
        pass

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """
        Validate that credentials are properly configured and working.

        Returns:
            True if a token could be obtained
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Drop any cached token"""
        pass

    @abstractmethod
    def get_provider_info(self) -> Dict[str, Any]:
        """
        Get information about the provider.

        Returns:
            Provider metadata (type, tenant, cache status, etc.)
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the provider"""
        return None


class D365Error(Exception):
    """Base class for errors raised by the D365 proxy layer"""
    pass


class AuthError(D365Error):
    """The identity provider rejected the client-credentials grant or could not be reached"""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body
