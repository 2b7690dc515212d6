"""
REST surface for the D365 CRM proxy
"""

from .app import create_app
from .responses import ApiError

__all__ = ["create_app", "ApiError"]
