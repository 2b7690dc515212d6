"""
MCP tools for the D365 CRM proxy
"""

from .registry import ToolRegistry

__all__ = ["ToolRegistry"]
