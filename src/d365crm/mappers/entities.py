"""
Entity Mappers

Static field-name tables between the internal camelCase shape and the D365 schema.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from ..auth.interface import D365Error


class UnknownEntityError(D365Error, KeyError):
    """Collection name has no mapper"""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown entity"


@dataclass(frozen=True)
class EntityMapper:
    """Two-way field mapping for one D365 entity collection"""

    collection: str
    primary_key: str
    fields: Mapping[str, str]
    read_only: Mapping[str, str] = field(default_factory=dict)
    search_fields: Tuple[str, ...] = ()

    @property
    def logical_name(self) -> str:
        """Entity logical name, e.g. `contact` for `contacts`"""
        return self.primary_key[: -len("id")]

    @property
    def reverse_fields(self) -> Dict[str, str]:
        reverse = {d365: internal for internal, d365 in self.fields.items()}
        reverse.update(self.read_only)
        return reverse

    @property
    def default_select(self) -> Tuple[str, ...]:
        names = [self.primary_key, *self.fields.values(), *self.read_only]
        return tuple(dict.fromkeys(names))

    def to_d365(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Internal names -> D365 names; unknown keys and None values are dropped"""
        return {
            self.fields[name]: value
            for name, value in record.items()
            if name in self.fields and value is not None
        }

    def from_d365(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """D365 names -> internal names; annotations and unmapped columns are dropped"""
        reverse = self.reverse_fields
        return {reverse[name]: value for name, value in record.items() if name in reverse}

    def to_internal_field(self, d365_name: str) -> str:
        return self.reverse_fields.get(d365_name, d365_name)


_SYSTEM_FIELDS = {"createdon": "createdOn", "modifiedon": "modifiedOn"}
_STATE_FIELDS = {"statecode": "stateCode", "statuscode": "statusCode"}


CONTACT = EntityMapper(
    collection="contacts",
    primary_key="contactid",
    fields={
        "firstName": "firstname",
        "lastName": "lastname",
        "email": "emailaddress1",
        "phone": "telephone1",
        "jobTitle": "jobtitle",
        "company": "companyname",
        "city": "address1_city",
        "country": "address1_country",
    },
    read_only={"contactid": "id", **_SYSTEM_FIELDS},
    search_fields=("firstname", "lastname", "emailaddress1", "companyname"),
)

ACCOUNT = EntityMapper(
    collection="accounts",
    primary_key="accountid",
    fields={
        "name": "name",
        "phone": "telephone1",
        "email": "emailaddress1",
        "website": "websiteurl",
        "city": "address1_city",
        "country": "address1_country",
    },
    read_only={"accountid": "id", **_SYSTEM_FIELDS},
    search_fields=("name", "emailaddress1"),
)

LEAD = EntityMapper(
    collection="leads",
    primary_key="leadid",
    fields={
        "firstName": "firstname",
        "lastName": "lastname",
        "email": "emailaddress1",
        "phone": "telephone1",
        "company": "companyname",
        "jobTitle": "jobtitle",
        "subject": "subject",
        "description": "description",
    },
    read_only={"leadid": "id", "leadsourcecode": "leadSource", **_STATE_FIELDS, **_SYSTEM_FIELDS},
    search_fields=("firstname", "lastname", "emailaddress1", "companyname"),
)

OPPORTUNITY = EntityMapper(
    collection="opportunities",
    primary_key="opportunityid",
    fields={
        "name": "name",
        "estimatedValue": "estimatedvalue",
        "estimatedCloseDate": "estimatedclosedate",
        "description": "description",
        "stageName": "stepname",
    },
    read_only={"opportunityid": "id", **_STATE_FIELDS, **_SYSTEM_FIELDS},
    search_fields=("name",),
)

MAPPERS: Dict[str, EntityMapper] = {
    mapper.collection: mapper for mapper in (CONTACT, ACCOUNT, LEAD, OPPORTUNITY)
}


def get_mapper(collection: str) -> EntityMapper:
    try:
        return MAPPERS[collection.lower()]
    except KeyError:
        raise UnknownEntityError(
            f"Unknown entity '{collection}'. Supported: {', '.join(sorted(MAPPERS))}"
        ) from None


def contact_to_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return CONTACT.to_d365(record)


def contact_from_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return CONTACT.from_d365(record)


def account_to_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return ACCOUNT.to_d365(record)


def account_from_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return ACCOUNT.from_d365(record)


def lead_to_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return LEAD.to_d365(record)


def lead_from_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return LEAD.from_d365(record)


def opportunity_to_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return OPPORTUNITY.to_d365(record)


def opportunity_from_d365(record: Mapping[str, Any]) -> Dict[str, Any]:
    return OPPORTUNITY.from_d365(record)
