"""CRM service implementations"""

from .interface import ICRMService
from .service import CRMService, EmptyPayloadError

__all__ = [
    "ICRMService",
    "CRMService",
    "EmptyPayloadError",
]
