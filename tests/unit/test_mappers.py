"""
Tests for entity field mapping
"""

import pytest

from d365crm.mappers import (
    ACCOUNT,
    CONTACT,
    LEAD,
    MAPPERS,
    OPPORTUNITY,
    UnknownEntityError,
    account_to_d365,
    contact_from_d365,
    contact_to_d365,
    get_mapper,
    lead_from_d365,
    lead_to_d365,
    opportunity_to_d365,
)


@pytest.mark.unit
class TestEntityMappers:
    def test_contact_round_trip(self, sample_contact):
        assert contact_from_d365(contact_to_d365(sample_contact)) == sample_contact

    @pytest.mark.parametrize("mapper", [CONTACT, ACCOUNT, LEAD, OPPORTUNITY], ids=lambda m: m.collection)
    def test_round_trip_every_writable_field(self, mapper):
        record = {name: f"value-{name}" for name in mapper.fields}

        assert mapper.from_d365(mapper.to_d365(record)) == record

    def test_lead_payload(self):
        payload = lead_to_d365({
            "firstName": "Grace",
            "lastName": "Hopper",
            "email": "grace@example.com",
            "company": "Navy",
        })

        assert payload == {
            "firstname": "Grace",
            "lastname": "Hopper",
            "emailaddress1": "grace@example.com",
            "companyname": "Navy",
        }

    def test_unknown_and_empty_fields_dropped(self):
        payload = contact_to_d365({"firstName": "Ada", "lastName": None, "favouriteColour": "green"})

        assert payload == {"firstname": "Ada"}

    def test_from_d365_maps_read_only_fields_and_drops_annotations(self):
        row = {
            "@odata.etag": 'W/"1234"',
            "leadid": "3f2504e0-4f89-11d3-9a0c-0305e82c3301",
            "firstname": "Grace",
            "statecode": 0,
            "statuscode": 1,
            "leadsourcecode": 8,
            "createdon": "2026-01-15T12:00:00Z",
            "_ownerid_value": "someone",
        }

        assert lead_from_d365(row) == {
            "id": "3f2504e0-4f89-11d3-9a0c-0305e82c3301",
            "firstName": "Grace",
            "stateCode": 0,
            "statusCode": 1,
            "leadSource": 8,
            "createdOn": "2026-01-15T12:00:00Z",
        }

    def test_read_only_fields_not_writable(self):
        assert contact_to_d365({"id": "x", "createdOn": "2026-01-01"}) == {}

    def test_account_and_opportunity_names(self):
        assert account_to_d365({"name": "Contoso", "website": "https://contoso.com"}) == {
            "name": "Contoso",
            "websiteurl": "https://contoso.com",
        }
        assert opportunity_to_d365({"estimatedValue": 5000, "stageName": "Qualify"}) == {
            "estimatedvalue": 5000,
            "stepname": "Qualify",
        }

    def test_default_select_starts_with_primary_key_without_duplicates(self):
        select = CONTACT.default_select

        assert select[0] == "contactid"
        assert len(select) == len(set(select))
        assert "emailaddress1" in select and "createdon" in select

    def test_get_mapper(self):
        assert get_mapper("Leads") is LEAD
        assert set(MAPPERS) == {"contacts", "accounts", "leads", "opportunities"}

    def test_unknown_entity(self):
        with pytest.raises(UnknownEntityError, match="Unknown entity 'invoices'"):
            get_mapper("invoices")

    def test_to_internal_field(self):
        assert CONTACT.to_internal_field("emailaddress1") == "email"
        assert CONTACT.to_internal_field("contactid") == "id"
        assert CONTACT.to_internal_field("unmapped") == "unmapped"
