from .contacts import router as contacts_router
from .crm import router as crm_router
from .d365 import router as d365_router

__all__ = ["contacts_router", "crm_router", "d365_router"]
