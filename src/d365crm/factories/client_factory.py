"""
D365 Client Factory

Creates client instances based on configuration.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, unquote
import structlog

from ..config import Settings
from ..auth import ITokenProvider
from ..client import ID365Client, RequestProxy, UpstreamError
from ..mappers import MAPPERS

logger = structlog.get_logger(__name__)

_RESOURCE_RE = re.compile(r"^(?P<collection>[A-Za-z_][A-Za-z0-9_.]*)(?:\((?P<id>[^)]+)\))?(?:\?(?P<query>.*))?$")
_EQUALS_RE = re.compile(r"(\w+) eq '((?:[^']|'')*)'")
_CONTAINS_RE = re.compile(r"contains\((\w+),'((?:[^']|'')*)'\)")
_LOGICAL_NAME_KEY_RE = re.compile(r"^LogicalName='((?:[^']|'')*)'$")


def _matches(row: Dict[str, Any], filter_expr: Optional[str]) -> bool:
    """Evaluate the string `eq` and `contains` clauses the service emits; other clauses pass"""
    if not filter_expr:
        return True
    for column, value in _EQUALS_RE.findall(filter_expr):
        if str(row.get(column, "")).lower() != value.replace("''", "'").lower():
            return False
    terms = _CONTAINS_RE.findall(filter_expr)
    if terms:
        return any(
            value.replace("''", "'").lower() in str(row.get(column) or "").lower()
            for column, value in terms
        )
    return True


class MockD365Client(ID365Client):
    """In-memory stand-in for the Dataverse Web API"""

    def __init__(self, token_provider: ITokenProvider):
        self.token_provider = token_provider
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in MAPPERS}
        self.calls: List[Dict[str, Any]] = []

    async def request(
        self,
        method: str,
        resource_url: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        return_representation: bool = False,
    ) -> Dict[str, Any]:
        await self.token_provider.get_token()
        method = method.upper()
        self.calls.append({"method": method, "resource_url": resource_url, "body": body})

        match = _RESOURCE_RE.match(resource_url)
        if not match:
            raise UpstreamError(400, None, f"Malformed resource url: {resource_url}")

        collection, record_id = match.group("collection"), match.group("id")
        options = dict(parse_qsl(match.group("query") or ""))

        if collection == "WhoAmI":
            return {"UserId": "00000000-0000-0000-0000-000000000001", "BusinessUnitId": "mock", "OrganizationId": "mock"}

        if collection == "EntityDefinitions" and method == "GET":
            return self._entity_definition(record_id or "")

        if collection not in self.tables:
            raise UpstreamError(404, None, f"Resource not found for the segment '{collection}'")
        table = self.tables[collection]
        primary_key = MAPPERS[collection].primary_key

        if method == "GET" and record_id:
            return dict(self._find(table, collection, record_id))

        if method == "GET":
            rows = [row for row in table.values() if _matches(row, options.get("$filter"))]
            skip = int(options.get("$skip", 0))
            top = int(options["$top"]) if "$top" in options else None
            page = rows[skip:skip + top] if top is not None else rows[skip:]
            result: Dict[str, Any] = {"value": [dict(row) for row in page]}
            if options.get("$count") == "true":
                result["@odata.count"] = len(rows)
            return result

        if method == "POST":
            new_id = str(uuid.uuid4())
            row = dict(body or {})
            row[primary_key] = new_id
            row["createdon"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            table[new_id] = row
            if return_representation:
                return dict(row)
            return {"id": new_id, "entityId": f"{collection}({new_id})"}

        if method == "PATCH" and record_id:
            self._find(table, collection, record_id).update(body or {})
            return {}

        raise UpstreamError(405, None, f"Method {method} not supported for {resource_url}")

    def _find(self, table: Dict[str, Dict[str, Any]], collection: str, record_id: str) -> Dict[str, Any]:
        row = table.get(record_id.lower())
        if row is None:
            raise UpstreamError(404, None, f"{collection} With Id = {record_id} Does Not Exist")
        return row

    def _entity_definition(self, key: str) -> Dict[str, Any]:
        """Attribute list derived from the mapped columns of the matching entity"""
        match = _LOGICAL_NAME_KEY_RE.match(unquote(key))
        logical_name = match.group(1).replace("''", "'") if match else key
        mapper = next((m for m in MAPPERS.values() if m.logical_name == logical_name), None)
        if mapper is None:
            raise UpstreamError(404, None, f"Could not find an entity with LogicalName = '{logical_name}'")

        attributes = [
            {"LogicalName": column, "AttributeType": "Uniqueidentifier" if column == mapper.primary_key else "String"}
            for column in mapper.default_select
        ]
        return {"LogicalName": logical_name, "Attributes": attributes}

    def get_client_info(self) -> Dict[str, Any]:
        """Returns mock client info"""
        return {
            "type": "mock_client",
            "capabilities": ["get", "create", "update", "functions"],
            "records": {name: len(rows) for name, rows in self.tables.items()},
        }


class ClientFactory:
    """Factory for creating D365 clients"""

    @staticmethod
    def create(settings: Settings, token_provider: ITokenProvider) -> ID365Client:
        """
        Create D365 client based on configuration.

        Args:
            settings: Application settings
            token_provider: Configured token provider

        Returns:
            Configured D365 client instance

        Raises:
            ValueError: If client type is not supported
        """
        client_type = settings.d365_client.lower()

        logger.info("Creating D365 client", client_type=client_type)

        if client_type == "odata":
            return RequestProxy(settings, token_provider)
        elif client_type == "mock":
            return MockD365Client(token_provider)
        else:
            raise ValueError(f"Unsupported D365 client: {client_type}")

    @staticmethod
    def get_available_clients() -> List[str]:
        """Get list of available client types"""
        return ["odata", "mock"]
