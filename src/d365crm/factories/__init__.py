"""
Factory classes for Dependency Injection

Provides factory methods to create implementations based on configuration.
"""

from .auth_factory import AuthProviderFactory, MockTokenProvider
from .client_factory import ClientFactory, MockD365Client
from .service_factory import ServiceFactory

__all__ = [
    "AuthProviderFactory",
    "MockTokenProvider",
    "ClientFactory",
    "MockD365Client",
    "ServiceFactory",
]
