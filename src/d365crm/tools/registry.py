"""
Tool Registry for the D365 CRM MCP server

Exposes the CRM service operations as MCP tools.
"""

import json
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import FastMCPError
import structlog

from ..auth import D365Error
from ..services.crm import ICRMService

logger = structlog.get_logger(__name__)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _fields(fields_json: str) -> Dict[str, Any]:
    try:
        fields = json.loads(fields_json)
    except json.JSONDecodeError as e:
        raise FastMCPError(f"fields_json is not valid JSON: {e}")
    if not isinstance(fields, dict):
        raise FastMCPError("fields_json must be a JSON object")
    return fields


class ToolRegistry:
    """
    Centralized tool registration for the CRM service.
    """

    @staticmethod
    def register_all_tools(mcp: FastMCP, crm_service: ICRMService) -> None:
        """Register all MCP tools"""
        logger.info("Registering MCP tools")

        ToolRegistry._register_record_tools(mcp, crm_service)
        ToolRegistry._register_insight_tools(mcp, crm_service)

        logger.info("All MCP tools registered successfully")

    @staticmethod
    def _register_record_tools(mcp: FastMCP, crm_service: ICRMService) -> None:
        """Register list/get/create/update tools"""

        @mcp.tool
        async def list_records(
            entity: str,
            search: Optional[str] = None,
            filter_query: Optional[str] = None,
            select_fields: Optional[str] = None,
            orderby: Optional[str] = None,
            top: int = 20,
            skip: int = 0,
            count: bool = False,
        ) -> str:
            """
            List CRM records of one entity type.

            Args:
                entity: contacts, accounts, leads or opportunities
                search: Free text matched (contains) against name and email columns
                filter_query: Raw OData $filter using D365 column names
                    (e.g. "statecode eq 0")
                select_fields: Comma-separated D365 columns (default: all mapped columns)
                orderby: OData $orderby (e.g. "createdon desc")
                top: Max records (default 20, max 5000)
                skip: Records to skip for pagination
                count: Include the total matching count

            Records come back with internal camelCase field names.
            """
            select = [name.strip() for name in select_fields.split(",")] if select_fields else None
            try:
                result = await crm_service.list_records(
                    entity,
                    search=search,
                    filter=filter_query,
                    select=select,
                    order_by=orderby,
                    top=min(top, 5000),
                    skip=skip,
                    count=count,
                )
                return _dump({"entity": entity, **result})
            except (D365Error, ValueError) as e:
                logger.error("List records failed", entity=entity, error=str(e))
                raise FastMCPError(f"Failed to list {entity}: {e}")

        @mcp.tool
        async def get_record(entity: str, record_id: str) -> str:
            """
            Get one CRM record by its GUID.

            Args:
                entity: contacts, accounts, leads or opportunities
                record_id: Record GUID (braces optional)
            """
            try:
                return _dump(await crm_service.get_record(entity, record_id))
            except (D365Error, ValueError) as e:
                logger.error("Get record failed", entity=entity, record_id=record_id, error=str(e))
                raise FastMCPError(f"Failed to get {entity} record {record_id}: {e}")

        @mcp.tool
        async def create_record(entity: str, fields_json: str) -> str:
            """
            Create a CRM record.

            Args:
                entity: contacts, accounts, leads or opportunities
                fields_json: JSON object with internal field names,
                    e.g. '{"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"}'

            Unknown fields are ignored. Returns the new record id.
            """
            fields = _fields(fields_json)
            try:
                return _dump(await crm_service.create_record(entity, fields))
            except (D365Error, ValueError) as e:
                logger.error("Create record failed", entity=entity, error=str(e))
                raise FastMCPError(f"Failed to create {entity} record: {e}")

        @mcp.tool
        async def update_record(entity: str, record_id: str, fields_json: str) -> str:
            """
            Update fields of an existing CRM record.

            Args:
                entity: contacts, accounts, leads or opportunities
                record_id: Record GUID
                fields_json: JSON object with the internal field names to change
            """
            fields = _fields(fields_json)
            try:
                return _dump(await crm_service.update_record(entity, record_id, fields))
            except (D365Error, ValueError) as e:
                logger.error("Update record failed", entity=entity, record_id=record_id, error=str(e))
                raise FastMCPError(f"Failed to update {entity} record {record_id}: {e}")

    @staticmethod
    def _register_insight_tools(mcp: FastMCP, crm_service: ICRMService) -> None:
        """Register dashboard, statistics and connection tools"""

        @mcp.tool
        async def get_dashboard() -> str:
            """
            Totals for contacts, leads and opportunities, pipeline value and recent activity.
            """
            try:
                return _dump(await crm_service.get_dashboard())
            except D365Error as e:
                logger.error("Dashboard failed", error=str(e))
                raise FastMCPError(f"Failed to build dashboard: {e}")

        @mcp.tool
        async def get_stats() -> str:
            """
            Contact and lead totals, last-30-day counts, web leads and conversion rate.
            """
            try:
                return _dump(await crm_service.get_stats())
            except D365Error as e:
                logger.error("Stats failed", error=str(e))
                raise FastMCPError(f"Failed to get statistics: {e}")

        @mcp.tool
        async def get_entity_metadata(entity: str) -> str:
            """
            Attribute names and types of a Dataverse entity.

            Args:
                entity: Collection (contacts, leads, ...) or logical name (contact, account, ...)

            Use it to discover D365 column names for filter_query and select_fields.
            """
            try:
                return _dump(await crm_service.get_entity_metadata(entity))
            except (D365Error, ValueError) as e:
                logger.error("Entity metadata failed", entity=entity, error=str(e))
                raise FastMCPError(f"Failed to get metadata for {entity}: {e}")

        @mcp.tool
        async def who_am_i() -> str:
            """
            Identity of the application user in Dynamics 365 (connection check).
            """
            try:
                return _dump(await crm_service.who_am_i())
            except D365Error as e:
                logger.error("WhoAmI failed", error=str(e))
                raise FastMCPError(f"Failed to reach Dynamics 365: {e}")
