"""
Server Factory for the D365 CRM proxy

Creates configured MCP server instances from the DI container and validates configuration.
"""

from typing import Optional

import structlog
from fastmcp import FastMCP

from . import __version__
from .config import Settings, get_settings, mask
from .di_container import DIContainer
from .tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)


class ServerFactory:
    """
    Factory for creating fully configured D365 CRM MCP server instances.
    """

    @staticmethod
    async def create_mcp_server(container: Optional[DIContainer] = None) -> FastMCP:
        """
        Create a ready-to-run MCP server.

        Credentials are validated up front so a misconfigured tenant fails
        at startup rather than on the first tool call.
        """
        logger.info("Creating D365 CRM MCP server")

        container = container or DIContainer()
        try:
            mcp = FastMCP(name="D365-CRM-Proxy", version=__version__)

            token_provider = container.get_token_provider()
            if not await token_provider.validate_credentials():
                raise RuntimeError("Failed to validate D365 credentials")

            crm_service = container.get_crm_service()
            ToolRegistry.register_all_tools(mcp, crm_service)

            # Kept for cleanup on shutdown
            mcp._container = container

            logger.info("D365 CRM MCP server created", **container.get_container_info()["settings"])
            return mcp

        except Exception as e:
            logger.error("Failed to create MCP server", error=str(e))
            await container.close()
            raise


class ServerValidator:
    """
    Configuration and connectivity checks for the --validate-config command.
    """

    @staticmethod
    async def validate_configuration(settings: Optional[Settings] = None) -> bool:
        """Validate configuration and D365 connectivity"""
        print("🔧 Validating D365 CRM proxy configuration...")

        settings = settings or get_settings()
        print("✅ Configuration loaded")
        print(f"   - D365 Base URL: {settings.d365_base_url}")
        print(f"   - Web API: {settings.d365_api_url}")
        print(f"   - Tenant: {settings.d365_tenant_id}")
        print(f"   - Client ID: {mask(settings.d365_client_id)}")
        print(f"   - Auth Provider: {settings.auth_provider}")
        print(f"   - D365 Client: {settings.d365_client}")

        if settings.d365_client != "mock":
            missing = settings.missing_credentials()
            if missing:
                print(f"❌ Missing environment variables: {', '.join(missing)}")
                return False

        container = DIContainer(settings)
        try:
            if await container.get_token_provider().validate_credentials():
                print("✅ D365 authentication successful")
            else:
                print("❌ D365 authentication failed")
                return False

            service = container.get_crm_service()
            identity = await service.who_am_i()
            print("✅ D365 WhoAmI successful")
            print(f"   - User ID: {identity.get('UserId')}")
            print(f"   - Organization ID: {identity.get('OrganizationId')}")

            client_info = container.get_d365_client().get_client_info()
            print(f"   - Client Type: {client_info.get('type')}")

        except Exception as e:
            print(f"❌ D365 connectivity check failed: {e}")
            return False
        finally:
            await container.close()

        print("\n🎉 Configuration validation completed successfully!")
        return True
