"""
/api/contacts: public website forms and contact lookups
"""

from fastapi import APIRouter, Depends, Query
import structlog

from ...schemas import WebContactIn, WebLeadIn
from ...services.crm import ICRMService
from ..dependencies import get_crm_service, require_api_key, require_d365_config
from ..responses import ApiError, failure_message, ok

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"], dependencies=[Depends(require_d365_config)])


async def _reject_existing(service: ICRMService, email: str) -> None:
    with failure_message("Internal server error"):
        existing = await service.get_contact_by_email(email)
    if existing:
        raise ApiError(400, "Contact with this email already exists in our system")


@router.post("/lead", status_code=201)
async def submit_lead(form: WebLeadIn, service: ICRMService = Depends(get_crm_service)):
    await _reject_existing(service, form.email)

    with failure_message("Internal server error"):
        created = await service.capture_web_lead(form.to_internal())

    logger.info("New lead created", lead_id=created.get("id"))
    return ok(
        {"lead": {
            "id": created.get("id"),
            "firstName": form.first_name,
            "lastName": form.last_name,
            "email": form.email,
            "company": form.company,
        }},
        message="Lead created successfully. We will contact you soon!",
        status_code=201,
    )


@router.post("/contact", status_code=201)
async def submit_contact(form: WebContactIn, service: ICRMService = Depends(get_crm_service)):
    await _reject_existing(service, form.email)

    with failure_message("Internal server error"):
        created = await service.capture_web_contact(form.to_internal())

    logger.info("New contact created", contact_id=created.get("id"))
    return ok(
        {"contact": {
            "id": created.get("id"),
            "firstName": form.first_name,
            "lastName": form.last_name,
            "email": form.email,
        }},
        message="Thank you for contacting us. We will get back to you soon!",
        status_code=201,
    )


@router.get("/search", dependencies=[Depends(require_api_key)])
async def search(q: str = Query(..., min_length=1, max_length=100), service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to search contacts in Dynamics 365"):
        contacts = await service.search_contacts(q)
    return ok({"contacts": contacts, "count": len(contacts)})


@router.get("/by-email", dependencies=[Depends(require_api_key)])
async def by_email(email: str = Query(..., max_length=100), service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to retrieve contact from Dynamics 365"):
        contact = await service.get_contact_by_email(email)
    if contact is None:
        raise ApiError(404, "Contact not found")
    return ok(contact)
