"""
D365 Client Interface

Defines contract for clients that forward OData calls to the Dataverse Web API
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Literal, Optional

from ..auth.interface import D365Error


HttpMethod = Literal["GET", "POST", "PATCH", "DELETE"]


class ID365Client(ABC):
    """Interface for D365 request proxies"""

    @abstractmethod
    async def request(
        self,
        method: str,
        resource_url: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        return_representation: bool = False,
    ) -> Dict[str, Any]:
        """
        Execute one OData call.

        Args:
            method: HTTP verb (GET, POST, PATCH)
            resource_url: Path relative to the Web API root, e.g. "contacts?$top=5"
            body: JSON payload for POST/PATCH
            return_representation: Ask D365 to echo the written record back

        Returns:
            Parsed JSON body; for empty responses, the record id decoded from
            the OData-EntityId header when present

        Raises:
            AuthError: If no token could be obtained
            UpstreamError: For any non-2xx response or transport failure
        """
        pass

    @abstractmethod
    def get_client_info(self) -> Dict[str, Any]:
        """
        Get client implementation information.

        Returns:
            Client metadata (type, api url, etc.)
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the client"""
        return None


class UpstreamError(D365Error):
    """D365 answered with a non-2xx status, or could not be reached (status is None)"""

    def __init__(self, status: Optional[int], body: Any = None, message: Optional[str] = None):
        self.status = status
        self.body = body
        self.message = message or f"Dynamics 365 request failed with status {status}"
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"UpstreamError(status={self.status!r}, message={self.message!r})"
