"""
D365 Token Cache

Client-credentials implementation of ITokenProvider with expiry-based caching.
"""

import time
from abc import abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import structlog

from ..config import Settings, mask
from .interface import AuthError, ITokenProvider, TokenState

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

DEFAULT_EXPIRES_IN = 3600


class CachedTokenProvider(ITokenProvider):
    """Keeps one TokenState and refreshes it lazily when it has expired"""

    def __init__(self, settings: Settings, clock: Clock = time.time) -> None:
        self.settings = settings
        self._clock = clock
        self._state = TokenState()

    @property
    def state(self) -> TokenState:
        return self._state

    async def get_token(self) -> str:
        if self._state.is_valid(self._clock()):
            logger.debug("Using cached D365 token", expires_at=self._state.expires_at)
            return str(self._state.access_token)
        return await self.refresh()

    async def refresh(self) -> str:
        """Fetch a new token unconditionally and cache it"""
        access_token, expires_in = await self._fetch_token()
        if expires_in <= 0:
            raise AuthError(f"Identity provider returned a non-positive lifetime: {expires_in}")

        skew = self.settings.token_refresh_skew_seconds
        lifetime = expires_in - skew if expires_in > skew else expires_in
        self._state = TokenState(access_token=access_token, expires_at=self._clock() + lifetime)

        logger.info("D365 token acquired", expires_in=expires_in, expires_at=self._state.expires_at)
        return access_token

    def clear(self) -> None:
        self._state = TokenState()
        logger.info("Token cache cleared")

    async def validate_credentials(self) -> bool:
        try:
            return bool(await self.get_token())
        except AuthError as e:
            logger.error("Credential validation failed", error=str(e))
            return False

    def _ensure_configured(self) -> None:
        missing = self.settings.missing_credentials()
        if missing:
            raise AuthError(f"D365 configuration is missing: {', '.join(missing)}")

    @abstractmethod
    async def _fetch_token(self) -> Tuple[str, float]:
        """Return (access_token, lifetime in seconds)"""
        pass


class TokenCache(CachedTokenProvider):
    """OAuth2 client-credentials grant against the Microsoft identity platform v2 endpoint"""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(settings, clock)
        self._http_client = http_client

        logger.info(
            "D365 token cache initialized",
            tenant_id=mask(settings.d365_tenant_id),
            client_id=mask(settings.d365_client_id),
            d365_base_url=settings.d365_base_url,
        )

    async def _fetch_token(self) -> Tuple[str, float]:
        self._ensure_configured()

        data = {
            "grant_type": "client_credentials",
            "client_id": self.settings.d365_client_id,
            "client_secret": self.settings.d365_client_secret,
            "scope": self.settings.token_scope,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        logger.debug("Requesting new D365 token", scope=self.settings.token_scope)

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.settings.token_url, data=data, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                    response = await client.post(self.settings.token_url, data=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Token request failed", error=str(e), token_url=self.settings.token_url)
            raise AuthError(f"Failed to reach identity provider: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "Identity provider rejected client credentials",
                status_code=response.status_code,
                response_text=response.text,
                tenant_id=mask(self.settings.d365_tenant_id),
                client_id=mask(self.settings.d365_client_id),
            )
            raise AuthError(
                "Failed to authenticate with Dynamics 365",
                status=response.status_code,
                body=_safe_json(response),
            )

        payload = _safe_json(response)
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthError("Identity provider response did not contain an access_token", body=payload)

        try:
            expires_in = float(payload.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError) as e:
            raise AuthError(f"Invalid expires_in in token response: {payload.get('expires_in')!r}") from e

        return str(payload["access_token"]), expires_in

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "type": "client_credentials",
            "tenant_id": mask(self.settings.d365_tenant_id),
            "client_id": mask(self.settings.d365_client_id),
            "token_url": self.settings.token_url,
            "scope": self.settings.token_scope,
            "cached": self._state.access_token is not None,
            "expires_at": self._state.expires_at,
        }


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
