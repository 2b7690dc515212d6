"""
D365 CRM Proxy

A backend proxy in front of the Microsoft Dynamics 365 (Dataverse) Web API:
cached client-credentials tokens, OData request building, entity mapping,
a REST API for website forms and dashboards, and an MCP tool surface.
"""

__version__ = "0.1.0"

from .main import main

__all__ = ["main"]
