"""
/api/d365: CRUD over contacts, accounts, leads and opportunities
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
import structlog

from ...di_container import DIContainer
from ...mappers import get_mapper
from ...schemas import CREATE_SCHEMAS, UPDATE_SCHEMAS
from ...services.crm import ICRMService
from ..dependencies import get_container, get_crm_service, require_d365_config
from ..responses import failure_message, ok

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/d365", tags=["d365"], dependencies=[Depends(require_d365_config)])

_LABELS = {
    "contacts": "contact",
    "accounts": "account",
    "leads": "lead",
    "opportunities": "opportunity",
}


@router.get("/health")
async def health(container: DIContainer = Depends(get_container)):
    with failure_message("Dynamics 365 connection failed"):
        await container.get_token_provider().get_token()
    return ok(
        message="Dynamics 365 connection is healthy",
        data={"timestamp": datetime.now(timezone.utc).isoformat()},
    )


@router.get("/dashboard")
async def dashboard(service: ICRMService = Depends(get_crm_service)):
    with failure_message("Failed to fetch dashboard data from Dynamics 365"):
        data = await service.get_dashboard()
    return ok(data)


@router.get("/metadata/{entity}")
async def entity_metadata(entity: str, service: ICRMService = Depends(get_crm_service)):
    with failure_message(f"Failed to fetch metadata for {entity} from Dynamics 365"):
        data = await service.get_entity_metadata(entity)
    return ok(data)


@router.get("/{entity}")
async def list_records(
    entity: str,
    filter: Optional[str] = Query(None, description="Raw OData $filter expression"),
    select: Optional[str] = Query(None, description="Comma-separated D365 columns"),
    search: Optional[str] = Query(None, max_length=100),
    top: Optional[int] = Query(None, ge=1, le=5000),
    skip: Optional[int] = Query(None, ge=0),
    service: ICRMService = Depends(get_crm_service),
):
    mapper = get_mapper(entity)
    columns = [name.strip() for name in select.split(",") if name.strip()] if select else None

    with failure_message(f"Failed to fetch {mapper.collection} from Dynamics 365"):
        data = await service.list_records(
            mapper.collection, search=search, filter=filter, select=columns, top=top, skip=skip
        )
    return ok(data)


@router.get("/{entity}/{record_id}")
async def get_record(entity: str, record_id: str, service: ICRMService = Depends(get_crm_service)):
    mapper = get_mapper(entity)
    with failure_message(f"Failed to fetch {_LABELS[mapper.collection]} from Dynamics 365"):
        data = await service.get_record(mapper.collection, record_id)
    return ok(data)


@router.post("/{entity}", status_code=201)
async def create_record(
    entity: str,
    payload: Dict[str, Any] = Body(...),
    service: ICRMService = Depends(get_crm_service),
):
    mapper = get_mapper(entity)
    fields = CREATE_SCHEMAS[mapper.collection].model_validate(payload).to_internal()
    label = _LABELS[mapper.collection]

    with failure_message(f"Failed to create {label} in Dynamics 365"):
        data = await service.create_record(mapper.collection, fields)

    logger.info("Record created via API", entity=mapper.collection, record_id=data.get("id"))
    return ok(data, message=f"{label.capitalize()} created successfully in Dynamics 365", status_code=201)


@router.put("/{entity}/{record_id}")
async def update_record(
    entity: str,
    record_id: str,
    payload: Dict[str, Any] = Body(...),
    service: ICRMService = Depends(get_crm_service),
):
    mapper = get_mapper(entity)
    fields = UPDATE_SCHEMAS[mapper.collection].model_validate(payload).to_internal()
    label = _LABELS[mapper.collection]

    with failure_message(f"Failed to update {label} in Dynamics 365"):
        await service.update_record(mapper.collection, record_id, fields)
    return ok(message=f"{label.capitalize()} updated successfully in Dynamics 365")
