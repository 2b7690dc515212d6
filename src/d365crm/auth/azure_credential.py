"""
Azure Identity Token Provider

ITokenProvider backed by azure-identity's ClientSecretCredential.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

from azure.core.exceptions import AzureError
from azure.identity import ClientSecretCredential
import structlog

from ..config import Settings, mask
from .interface import AuthError
from .token_cache import CachedTokenProvider, Clock

logger = structlog.get_logger(__name__)


class AzureCredentialTokenProvider(CachedTokenProvider):
    """Client credentials through azure-identity, cached with the same expiry rules as TokenCache.

    The synchronous credential runs in a worker thread, so the provider is not
    tied to the event loop that first used it (the MCP server validates
    credentials in one loop and serves tools from another).
    """

    def __init__(
        self,
        settings: Settings,
        credential: Optional[Any] = None,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(settings, clock)
        self._credential = credential

    def _get_credential(self) -> Any:
        if self._credential is None:
            self._ensure_configured()
            self._credential = ClientSecretCredential(
                tenant_id=self.settings.d365_tenant_id,
                client_id=self.settings.d365_client_id,
                client_secret=self.settings.d365_client_secret,
                authority=self.settings.authority_host,
            )
            logger.info(
                "Azure credential created",
                tenant_id=mask(self.settings.d365_tenant_id),
                client_id=mask(self.settings.d365_client_id),
            )
        return self._credential

    async def _fetch_token(self) -> Tuple[str, float]:
        credential = self._get_credential()
        scope = self.settings.token_scope

        logger.debug("Requesting new D365 token", scope=scope)
        try:
            token = await asyncio.to_thread(credential.get_token, scope)
        except AzureError as e:
            # Rejected secrets and unreachable authorities alike
            logger.error(
                "Failed to acquire D365 token",
                error=str(e),
                error_type=type(e).__name__,
                tenant_id=mask(self.settings.d365_tenant_id),
            )
            raise AuthError(f"Failed to acquire D365 token: {e}") from e

        return str(token.token), float(token.expires_on) - self._clock()

    async def close(self) -> None:
        if self._credential is not None:
            self._credential.close()
            self._credential = None

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "type": "azure_identity",
            "tenant_id": mask(self.settings.d365_tenant_id),
            "client_id": mask(self.settings.d365_client_id),
            "scope": self.settings.token_scope,
            "cached": self._state.access_token is not None,
            "expires_at": self._state.expires_at,
        }
