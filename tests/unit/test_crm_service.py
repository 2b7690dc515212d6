"""
Tests for the CRM service
"""

from unittest.mock import AsyncMock
from urllib.parse import unquote

import pytest

from d365crm.client import UpstreamError
from d365crm.mappers import UnknownEntityError
from d365crm.odata import InvalidRecordId
from d365crm.services.crm import CRMService, EmptyPayloadError

RECORD_ID = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"


@pytest.mark.unit
class TestCRMServiceQueries:
    """URL composition checked against a bare AsyncMock client"""

    @pytest.fixture
    def client(self):
        client = AsyncMock()
        client.request.return_value = {"value": []}
        return client

    @pytest.fixture
    def service(self, client):
        return CRMService(client)

    def last_url(self, client) -> str:
        return client.request.await_args.args[1]

    async def test_list_maps_rows_and_count(self, service, client):
        client.request.return_value = {
            "@odata.context": "...",
            "@odata.count": 1,
            "value": [{"@odata.etag": 'W/"1"', "contactid": RECORD_ID, "firstname": "Ada"}],
        }

        result = await service.list_records("contacts", count=True)

        assert result == {"records": [{"id": RECORD_ID, "firstName": "Ada"}], "count": 1}
        assert "$count=true" in self.last_url(client)

    async def test_list_selects_mapped_columns_by_default(self, service, client):
        await service.list_records("accounts")

        assert self.last_url(client).startswith("accounts?$select=accountid,name,telephone1,")

    async def test_search_term_is_escaped(self, service, client):
        await service.list_records("contacts", search="O'Brien")

        url = unquote(self.last_url(client))
        assert "contains(firstname,'O''Brien') or contains(lastname,'O''Brien')" in url

    async def test_search_and_filter_are_combined(self, service, client):
        await service.list_records("leads", search="acme", filter="statecode eq 0", top=10)

        url = unquote(self.last_url(client))
        assert "$filter=(contains(firstname,'acme') or " in url
        assert ") and (statecode eq 0)" in url
        assert url.endswith("&$top=10")

    async def test_get_contact_by_email_escapes_value(self, service, client):
        client.request.return_value = {"value": [{"contactid": RECORD_ID, "emailaddress1": "o'brien@example.com"}]}

        contact = await service.get_contact_by_email("o'brien@example.com")

        assert contact == {"id": RECORD_ID, "email": "o'brien@example.com"}
        url = unquote(self.last_url(client))
        assert "$filter=emailaddress1 eq 'o''brien@example.com'" in url
        assert url.endswith("&$top=1")

    async def test_get_contact_by_email_none_when_missing(self, service):
        assert await service.get_contact_by_email("nobody@example.com") is None

    async def test_get_contact_by_email_rejects_invalid(self, service, client):
        with pytest.raises(ValueError):
            await service.get_contact_by_email("not-an-email")
        client.request.assert_not_awaited()

    async def test_update_uses_patch_on_record_path(self, service, client):
        client.request.return_value = {}

        result = await service.update_record("contacts", "{" + RECORD_ID.upper() + "}", {"phone": "555"})

        assert result == {"id": RECORD_ID}
        client.request.assert_awaited_once_with("PATCH", f"contacts({RECORD_ID})", {"telephone1": "555"})

    async def test_invalid_record_id_never_reaches_client(self, service, client):
        with pytest.raises(InvalidRecordId):
            await service.get_record("contacts", "1 or 1 eq 1")
        client.request.assert_not_awaited()

    async def test_unknown_entity(self, service):
        with pytest.raises(UnknownEntityError):
            await service.list_records("invoices")

    async def test_update_lead_status(self, service, client):
        client.request.return_value = {}

        result = await service.update_lead_status(RECORD_ID, statecode=1, statuscode=3)

        assert result == {"id": RECORD_ID, "statecode": 1, "statuscode": 3}
        client.request.assert_awaited_once_with("PATCH", f"leads({RECORD_ID})", {"statecode": 1, "statuscode": 3})

    async def test_update_lead_status_requires_a_value(self, service):
        with pytest.raises(EmptyPayloadError):
            await service.update_lead_status(RECORD_ID)

    async def test_recent_activities_swallow_upstream_errors(self, service, client):
        client.request.side_effect = UpstreamError(500, None, "boom")

        assert await service.get_recent_activities() == []

    async def test_entity_metadata_uses_alternate_key_and_expand(self, service, client):
        client.request.return_value = {
            "LogicalName": "contact",
            "Attributes": [
                {"LogicalName": "lastname", "AttributeType": "String"},
                {"LogicalName": "contactid", "AttributeType": "Uniqueidentifier"},
            ],
        }

        metadata = await service.get_entity_metadata("contacts")

        client.request.assert_awaited_once_with(
            "GET",
            "EntityDefinitions(LogicalName='contact')"
            "?$select=LogicalName&$expand=Attributes($select=LogicalName,AttributeType)",
        )
        assert metadata == {
            "logicalName": "contact",
            "attributes": [
                {"logicalName": "contactid", "attributeType": "Uniqueidentifier"},
                {"logicalName": "lastname", "attributeType": "String"},
            ],
        }

    @pytest.mark.parametrize(
        "entity, key",
        [("opportunities", "opportunity"), ("Account", "account"), ("systemuser", "systemuser"), ("x'y", "x''y")],
    )
    async def test_entity_metadata_logical_name(self, service, client, entity, key):
        client.request.return_value = {}

        metadata = await service.get_entity_metadata(entity)

        assert self.last_url(client).startswith(f"EntityDefinitions(LogicalName='{key}')?")
        assert metadata["attributes"] == []

    async def test_entity_metadata_requires_a_name(self, service, client):
        with pytest.raises(ValueError):
            await service.get_entity_metadata("  ")
        client.request.assert_not_awaited()

    async def test_dashboard_counts_opportunities_server_side(self, service, client):
        """The opportunity total comes from @odata.count, not from the first page of rows"""

        def respond(method, url, *args, **kwargs):
            if url == "opportunities?$select=opportunityid&$top=1&$count=true":
                return {"@odata.count": 7500, "value": [{"opportunityid": RECORD_ID}]}
            if url == "opportunities?$select=opportunityid,estimatedvalue":
                return {"value": [{"estimatedvalue": 100}, {"estimatedvalue": None}]}
            return {"@odata.count": 0, "value": []}

        client.request.side_effect = respond

        dashboard = await service.get_dashboard()

        assert dashboard["totalOpportunities"] == 7500
        assert dashboard["totalValue"] == 100

    async def test_test_connection(self, service, client):
        client.request.return_value = {"UserId": "u"}
        assert await service.test_connection() is True
        assert self.last_url(client) == "WhoAmI"

        client.request.side_effect = UpstreamError(401)
        assert await service.test_connection() is False


@pytest.mark.unit
class TestCRMServiceWrites:
    """Behaviour against the in-memory D365 client"""

    async def test_create_and_get_contact(self, crm_service, mock_d365_client, sample_contact):
        created = await crm_service.create_record("contacts", sample_contact)

        assert created["id"]
        assert mock_d365_client.tables["contacts"][created["id"]]["emailaddress1"] == "ada@example.com"

        fetched = await crm_service.get_record("contacts", created["id"])
        assert fetched["email"] == "ada@example.com"
        assert fetched["id"] == created["id"]

    async def test_create_without_known_fields(self, crm_service):
        with pytest.raises(EmptyPayloadError):
            await crm_service.create_record("contacts", {"nickname": "Ada"})

    async def test_update_missing_record_is_upstream_404(self, crm_service):
        with pytest.raises(UpstreamError) as exc_info:
            await crm_service.update_record("contacts", RECORD_ID, {"firstName": "Ada"})
        assert exc_info.value.status == 404

    async def test_capture_web_lead_defaults(self, crm_service, mock_d365_client):
        created = await crm_service.capture_web_lead({
            "firstName": "Grace",
            "lastName": "Hopper",
            "email": "grace@example.com",
            "company": "Acme",
            "jobTitle": "CTO",
            "interests": ["CRM", "Analytics"],
            "message": "Call me",
        })

        row = mock_d365_client.tables["leads"][created["id"]]
        assert row["subject"] == "New Lead from Website - Acme"
        assert row["description"] == (
            "Lead generated from website signup form. Company: Acme, Job Title: CTO, "
            "Interests: CRM, Analytics\nCall me"
        )
        assert row["leadsourcecode"] == 1
        assert row["statecode"] == 0
        assert row["statuscode"] == 1
        assert row["new_interestareas"] == "CRM, Analytics"
        assert row["new_signupsource"] == "Website"
        assert row["new_websitesignupdate"] == "2026-01-15T12:00:00Z"

    async def test_capture_web_lead_without_company(self, crm_service, mock_d365_client):
        created = await crm_service.capture_web_lead(
            {"firstName": "Ada", "lastName": "King", "email": "ada@example.com", "signupSource": "Webinar"}
        )

        row = mock_d365_client.tables["leads"][created["id"]]
        assert row["subject"] == "New Lead from Website"
        assert row["description"] == "Lead generated from website signup form."
        assert row["new_signupsource"] == "Webinar"
        assert "new_interestareas" not in row

    async def test_capture_web_contact(self, crm_service, mock_d365_client):
        created = await crm_service.capture_web_contact({
            "firstName": "Ada",
            "lastName": "King",
            "email": "ada@example.com",
            "company": "Engines",
            "city": "London",
            "interests": "Mathematics",
        })

        row = mock_d365_client.tables["contacts"][created["id"]]
        assert row["address1_city"] == "London"
        assert row["description"] == "Contact from website signup. Company: Engines"
        assert row["new_interestareas"] == "Mathematics"
        assert row["statecode"] == 0

    async def test_search_contacts(self, crm_service, sample_contact):
        await crm_service.create_record("contacts", sample_contact)
        await crm_service.create_record("contacts", {"firstName": "Alan", "lastName": "Turing", "email": "alan@example.com"})

        found = await crm_service.search_contacts("lovelace")

        assert [contact["lastName"] for contact in found] == ["Lovelace"]

    async def test_get_contact_by_email(self, crm_service, sample_contact):
        await crm_service.create_record("contacts", sample_contact)

        assert (await crm_service.get_contact_by_email("ADA@example.com"))["lastName"] == "Lovelace"
        assert await crm_service.get_contact_by_email("alan@example.com") is None


    async def test_entity_metadata_from_mock_backend(self, crm_service):
        metadata = await crm_service.get_entity_metadata("leads")

        assert metadata["logicalName"] == "lead"
        assert {"logicalName": "leadid", "attributeType": "Uniqueidentifier"} in metadata["attributes"]
        assert {"logicalName": "emailaddress1", "attributeType": "String"} in metadata["attributes"]

    async def test_entity_metadata_unknown_entity_is_upstream_404(self, crm_service):
        with pytest.raises(UpstreamError) as exc_info:
            await crm_service.get_entity_metadata("invoice")
        assert exc_info.value.status == 404


@pytest.mark.unit
class TestCRMServiceReporting:
    @pytest.fixture
    async def seeded(self, crm_service, sample_contact):
        await crm_service.create_record("contacts", sample_contact)
        await crm_service.create_record("contacts", {"firstName": "Alan", "lastName": "Turing", "email": "alan@example.com"})
        await crm_service.capture_web_lead({"firstName": "Grace", "lastName": "Hopper", "email": "grace@example.com", "company": "Navy"})
        await crm_service.create_record("opportunities", {"name": "Big deal", "estimatedValue": 1500})
        await crm_service.create_record("opportunities", {"name": "Small deal", "estimatedValue": 500})
        return crm_service

    async def test_dashboard(self, seeded):
        dashboard = await seeded.get_dashboard()

        assert dashboard["totalContacts"] == 2
        assert dashboard["totalLeads"] == 1
        assert dashboard["totalOpportunities"] == 2
        assert dashboard["totalValue"] == 2000
        assert len(dashboard["recentActivities"]) == 5
        assert {activity["type"] for activity in dashboard["recentActivities"]} == {"contact", "lead", "opportunity"}

    async def test_stats(self, seeded):
        stats = await seeded.get_stats()

        assert stats["totalContacts"] == 2
        assert stats["totalLeads"] == 1
        assert stats["webLeads"] == 1
        assert stats["conversionRate"] == 50.0
        assert stats["timestamp"] == "2026-01-15T12:00:00Z"

    async def test_stats_without_contacts(self, crm_service):
        stats = await crm_service.get_stats()

        assert stats["conversionRate"] == 0

    async def test_export_records(self, seeded):
        export = await seeded.export_records("leads")

        assert export["type"] == "leads"
        assert export["count"] == 1
        assert export["records"][0]["email"] == "grace@example.com"
        assert export["exportedAt"] == "2026-01-15T12:00:00Z"

    async def test_export_rejects_other_entities(self, seeded):
        with pytest.raises(ValueError, match="Invalid export type"):
            await seeded.export_records("opportunities")

    async def test_export_csv(self, seeded):
        content = await seeded.export_csv("contacts")

        lines = content.strip().splitlines()
        header = lines[0].split(",")
        assert {"id", "firstName", "lastName", "email"} <= set(header)
        assert len(lines) == 3
        assert any("ada@example.com" in line for line in lines[1:])

    async def test_export_csv_empty(self, crm_service):
        assert await crm_service.export_csv("leads") == ""

    async def test_check_auth(self, crm_service):
        result = await crm_service.check_auth()

        assert result["hasToken"] is True
        assert result["tokenLength"] == len("mock_bearer_token_12345")
        assert "UserId" in result["whoAmI"]
