"""Field mappings between internal records and D365 entities"""

from .entities import (
    EntityMapper,
    UnknownEntityError,
    CONTACT,
    ACCOUNT,
    LEAD,
    OPPORTUNITY,
    MAPPERS,
    get_mapper,
    contact_to_d365,
    contact_from_d365,
    account_to_d365,
    account_from_d365,
    lead_to_d365,
    lead_from_d365,
    opportunity_to_d365,
    opportunity_from_d365,
)

__all__ = [
    "EntityMapper",
    "UnknownEntityError",
    "CONTACT",
    "ACCOUNT",
    "LEAD",
    "OPPORTUNITY",
    "MAPPERS",
    "get_mapper",
    "contact_to_d365",
    "contact_from_d365",
    "account_to_d365",
    "account_from_d365",
    "lead_to_d365",
    "lead_from_d365",
    "opportunity_to_d365",
    "opportunity_from_d365",
]
