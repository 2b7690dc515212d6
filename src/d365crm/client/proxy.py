"""
D365 Request Proxy

Attaches the bearer token and OData headers, forwards the call and classifies failures.
"""

import re
from typing import Any, Dict, Optional
from urllib.parse import unquote

import httpx
import structlog

from ..auth import ITokenProvider
from ..config import Settings
from .interface import ID365Client, UpstreamError

logger = structlog.get_logger(__name__)

_ENTITY_ID_RE = re.compile(r"\(([^()]+)\)\s*$")


class RequestProxy(ID365Client):
    """HTTP client for the Dataverse Web API; no retries, one call per request"""

    def __init__(
        self,
        settings: Settings,
        token_provider: ITokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self.token_provider = token_provider
        self._http_client = http_client

    def get_headers(self, token: str, method: str, return_representation: bool = False) -> Dict[str, str]:
        """Get standard HTTP headers for D365 OData requests"""
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "OData-MaxVersion": "4.0",
            "OData-Version": "4.0",
        }
        if method == "PATCH":
            headers["If-Match"] = "*"
        if return_representation:
            headers["Prefer"] = "return=representation"
        return headers

    def build_url(self, resource_url: str) -> str:
        return f"{self.settings.d365_api_url}/{resource_url.lstrip('/')}"

    async def request(
        self,
        method: str,
        resource_url: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        return_representation: bool = False,
    ) -> Dict[str, Any]:
        method = method.upper()
        token = await self.token_provider.get_token()
        url = self.build_url(resource_url)
        headers = self.get_headers(token, method, return_representation)

        logger.info("D365 request", method=method, resource=resource_url)

        try:
            response = await self._send(method, url, headers, body)
        except httpx.HTTPError as e:
            logger.error("D365 request error", method=method, resource=resource_url, error=str(e))
            raise UpstreamError(None, None, f"Failed to reach Dynamics 365: {e}") from e

        if not response.is_success:
            error_body = _decode_body(response)
            message = describe_upstream_error(error_body, response.status_code)
            logger.error(
                "D365 request failed",
                method=method,
                resource=resource_url,
                status_code=response.status_code,
                response_text=response.text,
            )
            raise UpstreamError(response.status_code, error_body, message)

        result = self._unwrap(response)
        logger.debug("D365 request successful", method=method, resource=resource_url, status_code=response.status_code)
        return result

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        kwargs: Dict[str, Any] = {"headers": headers}
        if body is not None:
            kwargs["json"] = body

        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)

        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            return await client.request(method, url, **kwargs)

    def _unwrap(self, response: httpx.Response) -> Dict[str, Any]:
        if response.content:
            decoded = _decode_body(response)
            result: Dict[str, Any] = decoded if isinstance(decoded, dict) else {"value": decoded}
        else:
            result = {}

        entity_id = response.headers.get("OData-EntityId")
        if entity_id and not response.content:
            result["entityId"] = unquote(entity_id)
            record_id = extract_record_id(entity_id)
            if record_id:
                result["id"] = record_id
        return result

    def get_client_info(self) -> Dict[str, Any]:
        return {
            "type": "odata_proxy",
            "api_url": self.settings.d365_api_url,
            "api_version": self.settings.d365_api_version,
            "capabilities": ["get", "create", "update", "functions"],
        }

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


def extract_record_id(entity_id_header: str) -> Optional[str]:
    """`https://org/api/data/v9.2/contacts(00000000-...)` -> `00000000-...`"""
    match = _ENTITY_ID_RE.search(unquote(entity_id_header))
    return match.group(1) if match else None


def describe_upstream_error(body: Any, status: Optional[int] = None) -> str:
    """Human-readable message from a Dataverse error payload"""
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return f"Dynamics 365 request failed with status {status}"

    error = body["error"]
    message = error.get("message") or "Unknown Dynamics 365 error"

    details = error.get("details")
    if isinstance(details, list) and details:
        field_errors = [
            f"Field: {detail.get('target') or 'unknown'} - {detail.get('message') or detail.get('code')}"
            for detail in details
            if isinstance(detail, dict)
        ]
        if field_errors:
            message += "\nField validation errors:\n" + "\n".join(field_errors)

    inner = error.get("innererror")
    if isinstance(inner, dict) and inner.get("message"):
        message += f"\nInner error: {inner['message']}"

    return message


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
