"""
Authentication module for the D365 CRM proxy

Handles client-credentials token acquisition and caching for the Dataverse Web API.
"""

from .interface import ITokenProvider, TokenState, D365Error, AuthError
from .token_cache import CachedTokenProvider, TokenCache
from .azure_credential import AzureCredentialTokenProvider

__all__ = [
    "ITokenProvider",
    "TokenState",
    "D365Error",
    "AuthError",
    "CachedTokenProvider",
    "TokenCache",
    "AzureCredentialTokenProvider",
]
