"""Service layer for the D365 CRM proxy"""

from .crm import ICRMService, CRMService, EmptyPayloadError

__all__ = ["ICRMService", "CRMService", "EmptyPayloadError"]
