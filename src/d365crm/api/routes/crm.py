"""
/api/crm: dashboard-facing reads, statistics, lead status and export
"""

import math
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
import structlog

from ...config import Settings
from ...schemas import LeadStatusUpdate
from ...services.crm import ICRMService
from ..dependencies import get_app_settings, get_crm_service, require_api_key, require_d365_config
from ..responses import ApiError, failure_message, ok

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/crm", tags=["crm"], dependencies=[Depends(require_d365_config)])

private = [Depends(require_api_key)]


async def _paged(
    service: ICRMService,
    entity: str,
    page: int,
    limit: int,
    search: Optional[str],
) -> dict:
    result = await service.list_records(
        entity,
        search=search,
        order_by="createdon desc",
        top=limit,
        skip=(page - 1) * limit,
        count=True,
    )
    total = result.get("count", 0)
    return {
        entity: result["records"],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


@router.get("/status", dependencies=private)
async def status(
    service: ICRMService = Depends(get_crm_service),
    settings: Settings = Depends(get_app_settings),
):
    with failure_message("Failed to check CRM connection status"):
        connected = await service.test_connection()
    return ok({
        "connected": connected,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.app_env,
    })


@router.get("/test-auth")
async def test_auth(service: ICRMService = Depends(get_crm_service)):
    logger.info("Testing Dynamics 365 authentication")
    with failure_message("Dynamics 365 authentication failed"):
        data = await service.check_auth()
    return ok(data, message="Dynamics 365 authentication successful")


@router.get("/contacts", dependencies=private)
async def list_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    service: ICRMService = Depends(get_crm_service),
):
    with failure_message("Failed to retrieve contacts"):
        data = await _paged(service, "contacts", page, limit, search)
    return ok(data)


@router.get("/contacts/{record_id}", dependencies=private)
async def get_contact(record_id: str, service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to retrieve contact"):
        data = await service.get_record("contacts", record_id)
    return ok(data)


@router.get("/leads", dependencies=private)
async def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    service: ICRMService = Depends(get_crm_service),
):
    with failure_message("Failed to retrieve leads"):
        data = await _paged(service, "leads", page, limit, search)
    return ok(data)


@router.get("/leads/{record_id}", dependencies=private)
async def get_lead(record_id: str, service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to retrieve lead"):
        data = await service.get_record("leads", record_id)
    return ok(data)


@router.put("/leads/{record_id}/status", dependencies=private)
async def update_lead_status(
    record_id: str,
    body: LeadStatusUpdate,
    service: ICRMService = Depends(get_crm_service),
):
    with failure_message("Failed to update lead status"):
        await service.update_lead_status(record_id, body.statecode, body.statuscode)
    return ok(message="Lead status updated successfully")


@router.get("/stats", dependencies=private)
async def stats(service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to retrieve CRM statistics"):
        data = await service.get_stats()
    return ok(data)


@router.get("/export", dependencies=private)
async def export(
    type: Literal["contacts", "leads"] = Query("contacts"),
    format: Literal["json", "csv"] = Query("json"),
    service: ICRMService = Depends(get_crm_service),
):
    if format == "json":
        with failure_message("Failed to export data"):
            data = await service.export_records(type)
        return ok(data)

    with failure_message("Failed to export data"):
        content = await service.export_csv(type)
    if not content:
        raise ApiError(404, "No data to export")

    filename = f"{type}_export_{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
