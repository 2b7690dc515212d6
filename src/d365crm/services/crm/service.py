"""
CRM Service Implementation

Chains entity mapping, OData request building and the request proxy for every CRM operation.
"""

import asyncio
import csv
import io
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from .interface import ICRMService
from ...auth import D365Error, ITokenProvider
from ...client import ID365Client
from ...mappers import CONTACT, LEAD, MAPPERS, OPPORTUNITY, EntityMapper, get_mapper
from ...odata import ODataRequestBuilder, QuerySpec, contains_any, equals, normalize_record_id
from ...schemas import validate_email

logger = structlog.get_logger(__name__)

# Dataverse option set values used by the website forms
LEAD_SOURCE_WEB = 1
STATE_ACTIVE = 0
STATUS_NEW = 1

# Custom columns added to contacts and leads for website sign-ups
INTEREST_AREAS_FIELD = "new_interestareas"
SIGNUP_DATE_FIELD = "new_websitesignupdate"
SIGNUP_SOURCE_FIELD = "new_signupsource"

EXPORTABLE_ENTITIES = ("contacts", "leads")
RECENT_DAYS = 30

ENTITY_DEFINITIONS = "EntityDefinitions"
ATTRIBUTES_EXPAND = "Attributes($select=LogicalName,AttributeType)"


class EmptyPayloadError(D365Error, ValueError):
    """No writable field survived mapping"""
    pass


class CRMService(ICRMService):
    """CRM operations over the D365 request proxy"""

    def __init__(
        self,
        client: ID365Client,
        token_provider: Optional[ITokenProvider] = None,
        builder: Optional[ODataRequestBuilder] = None,
        signup_source: str = "Website",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.token_provider = token_provider
        self.builder = builder or ODataRequestBuilder()
        self.signup_source = signup_source
        self._now = now

    async def close(self) -> None:
        await self.client.close()
        logger.info("CRM service closed")

    # Generic entity operations
    async def list_records(
        self,
        entity: str,
        *,
        search: Optional[str] = None,
        filter: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
        order_by: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        count: bool = False,
    ) -> Dict[str, Any]:
        mapper = get_mapper(entity)

        clauses = []
        if search:
            clauses.append(contains_any(mapper.search_fields, search))
        if filter:
            clauses.append(filter)
        if len(clauses) > 1:
            clauses = [f"({clause})" for clause in clauses]

        query = QuerySpec(
            select=list(select or mapper.default_select),
            filter=" and ".join(clauses) or None,
            order_by=order_by,
            top=top,
            skip=skip,
            count=count,
        )

        logger.info("Listing records", entity=mapper.collection, search=bool(search), top=top, skip=skip)
        result = await self.client.request("GET", self.builder.build(mapper.collection, query))

        response: Dict[str, Any] = {"records": [mapper.from_d365(row) for row in result.get("value", [])]}
        if "@odata.count" in result:
            response["count"] = result["@odata.count"]
        return response

    async def get_record(self, entity: str, record_id: str) -> Dict[str, Any]:
        mapper = get_mapper(entity)
        query = QuerySpec(select=list(mapper.default_select))
        result = await self.client.request("GET", self.builder.build(mapper.collection, query, record_id))
        return mapper.from_d365(result)

    async def create_record(self, entity: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        mapper = get_mapper(entity)
        return await self._create(mapper, self._payload(mapper, fields))

    async def update_record(self, entity: str, record_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        mapper = get_mapper(entity)
        payload = self._payload(mapper, fields)
        record_id = normalize_record_id(record_id)

        await self.client.request("PATCH", self.builder.build(mapper.collection, record_id=record_id), payload)
        logger.info("Record updated", entity=mapper.collection, record_id=record_id, fields=sorted(payload))
        return {"id": record_id}

    def _payload(self, mapper: EntityMapper, fields: Mapping[str, Any]) -> Dict[str, Any]:
        payload = mapper.to_d365(fields)
        if not payload:
            raise EmptyPayloadError(f"No writable {mapper.collection} fields supplied")
        return payload

    async def _create(self, mapper: EntityMapper, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.request("POST", self.builder.build(mapper.collection), payload)
        record_id = result.get("id") or result.get(mapper.primary_key)

        logger.info("Record created", entity=mapper.collection, record_id=record_id)
        return {"id": record_id, "entityId": result.get("entityId")}

    # Contacts and leads
    async def search_contacts(self, term: str, top: int = 50) -> List[Dict[str, Any]]:
        result = await self.list_records(
            "contacts",
            search=term,
            select=["contactid", "firstname", "lastname", "emailaddress1", "telephone1"],
            top=top,
        )
        return result["records"]

    async def get_contact_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            raise ValueError("Valid email address is required")
        validate_email(email)

        query = QuerySpec(select=list(CONTACT.default_select), filter=equals("emailaddress1", email), top=1)
        result = await self.client.request("GET", self.builder.build(CONTACT.collection, query))
        rows = result.get("value", [])
        return CONTACT.from_d365(rows[0]) if rows else None

    async def update_lead_status(
        self, lead_id: str, statecode: Optional[int] = None, statuscode: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {
            name: value
            for name, value in (("statecode", statecode), ("statuscode", statuscode))
            if value is not None
        }
        if not payload:
            raise EmptyPayloadError("statecode or statuscode is required")

        lead_id = normalize_record_id(lead_id)
        await self.client.request("PATCH", self.builder.build(LEAD.collection, record_id=lead_id), payload)

        logger.info("Lead status updated", lead_id=lead_id, statecode=statecode, statuscode=statuscode)
        return {"id": lead_id, **payload}

    async def capture_web_lead(self, form: Mapping[str, Any]) -> Dict[str, Any]:
        payload = self._payload(LEAD, form)
        company = form.get("company")
        job_title = form.get("jobTitle")
        interests = _join_interests(form.get("interests"))

        description = "Lead generated from website signup form."
        if company:
            description += f" Company: {company}"
        if job_title:
            description += f", Job Title: {job_title}"
        if interests:
            description += f", Interests: {interests}"
        if form.get("message"):
            description += f"\n{form['message']}"

        payload.update(
            {
                "subject": f"New Lead from Website{f' - {company}' if company else ''}",
                "description": description,
                "leadsourcecode": LEAD_SOURCE_WEB,
                "statecode": STATE_ACTIVE,
                "statuscode": STATUS_NEW,
            }
        )
        payload.update(self._signup_fields(form, interests))

        return await self._create(LEAD, payload)

    async def capture_web_contact(self, form: Mapping[str, Any]) -> Dict[str, Any]:
        payload = self._payload(CONTACT, form)
        interests = _join_interests(form.get("interests"))

        if form.get("company"):
            description = f"Contact from website signup. Company: {form['company']}"
            if form.get("jobTitle"):
                description += f", Job Title: {form['jobTitle']}"
            payload["description"] = description

        payload.update({"statecode": STATE_ACTIVE, "statuscode": STATUS_NEW})
        payload.update(self._signup_fields(form, interests))

        return await self._create(CONTACT, payload)

    def _signup_fields(self, form: Mapping[str, Any], interests: Optional[str]) -> Dict[str, Any]:
        fields = {
            SIGNUP_DATE_FIELD: form.get("websiteSignupDate") or _isoformat(self._now()),
            SIGNUP_SOURCE_FIELD: form.get("signupSource") or self.signup_source,
        }
        if interests:
            fields[INTEREST_AREAS_FIELD] = interests
        return fields

    # Reporting
    async def get_dashboard(self) -> Dict[str, Any]:
        contacts, leads, opportunity_count, opportunities = await asyncio.gather(
            self._count(CONTACT),
            self._count(LEAD),
            self._count(OPPORTUNITY),
            self.client.request(
                "GET",
                self.builder.build(OPPORTUNITY.collection, QuerySpec(select=["opportunityid", "estimatedvalue"])),
            ),
        )
        rows = opportunities.get("value", [])

        return {
            "totalContacts": contacts,
            "totalLeads": leads,
            "totalOpportunities": opportunity_count,
            "totalValue": sum(row.get("estimatedvalue") or 0 for row in rows),
            "recentActivities": await self.get_recent_activities(),
        }

    async def get_recent_activities(self, per_entity: int = 5, limit: int = 10) -> List[Dict[str, Any]]:
        def recent(mapper: EntityMapper, select: List[str]) -> str:
            query = QuerySpec(select=select, order_by="createdon desc", top=per_entity)
            return self.builder.build(mapper.collection, query)

        try:
            contacts, leads, opportunities = await asyncio.gather(
                self.client.request("GET", recent(CONTACT, ["contactid", "firstname", "lastname", "createdon"])),
                self.client.request("GET", recent(LEAD, ["leadid", "firstname", "lastname", "companyname", "createdon"])),
                self.client.request("GET", recent(OPPORTUNITY, ["opportunityid", "name", "estimatedvalue", "createdon"])),
            )
        except D365Error as e:
            logger.warning("Recent activities unavailable", error=str(e))
            return []

        activities: List[Dict[str, Any]] = []
        for row in contacts.get("value", []):
            activities.append({
                "id": row.get("contactid"),
                "type": "contact",
                "title": f"New Contact: {_full_name(row)}",
                "description": f"Contact created on {_date_label(row.get('createdon'))}",
                "timestamp": row.get("createdon"),
                "status": "completed",
            })
        for row in leads.get("value", []):
            activities.append({
                "id": row.get("leadid"),
                "type": "lead",
                "title": f"New Lead: {_full_name(row)}",
                "description": f"Lead from {row.get('companyname') or 'unknown company'} created on {_date_label(row.get('createdon'))}",
                "timestamp": row.get("createdon"),
                "status": "pending",
            })
        for row in opportunities.get("value", []):
            activities.append({
                "id": row.get("opportunityid"),
                "type": "opportunity",
                "title": f"New Opportunity: {row.get('name')}",
                "description": f"Opportunity worth ${row.get('estimatedvalue') or 0:,} created on {_date_label(row.get('createdon'))}",
                "timestamp": row.get("createdon"),
                "status": "pending",
            })

        activities.sort(key=lambda item: item["timestamp"] or "", reverse=True)
        return activities[:limit]

    async def get_stats(self) -> Dict[str, Any]:
        since = _isoformat(self._now() - timedelta(days=RECENT_DAYS))
        recent_filter = f"createdon ge {since}"

        total_contacts, total_leads, recent_contacts, recent_leads, web_leads = await asyncio.gather(
            self._count(CONTACT),
            self._count(LEAD),
            self._count(CONTACT, recent_filter),
            self._count(LEAD, recent_filter),
            self._count(LEAD, f"leadsourcecode eq {LEAD_SOURCE_WEB}"),
        )

        return {
            "totalContacts": total_contacts,
            "totalLeads": total_leads,
            "recentContacts": recent_contacts,
            "recentLeads": recent_leads,
            "webLeads": web_leads,
            "conversionRate": round(web_leads / total_contacts * 100, 2) if total_contacts else 0,
            "timestamp": _isoformat(self._now()),
        }

    async def _count(self, mapper: EntityMapper, filter: Optional[str] = None) -> int:
        query = QuerySpec(select=[mapper.primary_key], filter=filter, top=1, count=True)
        result = await self.client.request("GET", self.builder.build(mapper.collection, query))
        return int(result.get("@odata.count") or 0)

    async def export_records(self, entity: str) -> Dict[str, Any]:
        if entity not in EXPORTABLE_ENTITIES:
            raise ValueError(f'Invalid export type. Must be one of: {", ".join(EXPORTABLE_ENTITIES)}')

        result = await self.list_records(entity, order_by="createdon desc")
        records = result["records"]
        logger.info("Records exported", entity=entity, count=len(records))
        return {
            "type": entity,
            "count": len(records),
            "records": records,
            "exportedAt": _isoformat(self._now()),
        }

    async def export_csv(self, entity: str) -> str:
        records = (await self.export_records(entity))["records"]
        if not records:
            return ""

        fieldnames = list(dict.fromkeys(name for record in records for name in record))
        buffer = io.StringIO(newline="")
        writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for record in records:
            writer.writerow({name: record.get(name, "") for name in fieldnames})
        return buffer.getvalue()

    # Metadata
    async def get_entity_metadata(self, entity: str) -> Dict[str, Any]:
        mapper = MAPPERS.get((entity or "").lower())
        logical_name = mapper.logical_name if mapper else (entity or "").strip().lower()
        if not logical_name:
            raise ValueError("Entity name is required")

        query = QuerySpec(select=["LogicalName"], expand=ATTRIBUTES_EXPAND)
        result = await self.client.request(
            "GET", self.builder.build(ENTITY_DEFINITIONS, query, key={"LogicalName": logical_name})
        )

        attributes = sorted(
            (
                {"logicalName": item.get("LogicalName"), "attributeType": item.get("AttributeType")}
                for item in result.get("Attributes", [])
            ),
            key=lambda item: item["logicalName"] or "",
        )
        logger.info("Entity metadata retrieved", entity=logical_name, attributes=len(attributes))
        return {"logicalName": result.get("LogicalName", logical_name), "attributes": attributes}

    # Connectivity
    async def who_am_i(self) -> Dict[str, Any]:
        return await self.client.request("GET", self.builder.build_function("WhoAmI"))

    async def test_connection(self) -> bool:
        try:
            await self.who_am_i()
        except D365Error as e:
            logger.error("Dynamics 365 connection test failed", error=str(e))
            return False
        logger.info("Dynamics 365 connection test successful")
        return True

    async def check_auth(self) -> Dict[str, Any]:
        token = await self.token_provider.get_token() if self.token_provider else None
        who_am_i = await self.who_am_i()
        return {
            "hasToken": bool(token),
            "tokenLength": len(token) if token else 0,
            "whoAmI": who_am_i,
        }


def _join_interests(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item).strip() for item in value)
    return str(value)


def _full_name(row: Mapping[str, Any]) -> str:
    return f"{row.get('firstname') or ''} {row.get('lastname') or ''}".strip()


def _date_label(value: Optional[str]) -> str:
    if not value:
        return "unknown date"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def _isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
