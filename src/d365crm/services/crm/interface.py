"""
CRM Service Interface

Defines contract for CRM service implementations
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence


class ICRMService(ABC):
    """Interface for CRM services"""

    # Generic entity operations
    @abstractmethod
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
        """
        List records of one entity collection.

        Args:
            entity: Collection name (contacts, accounts, leads, opportunities)
            search: Free-text term matched with contains() over the entity's search fields
            filter: Raw OData $filter expression, passed through as given
            select: D365 column names; defaults to every mapped column
            order_by: OData $orderby expression
            top: Maximum records to return
            skip: Records to skip
            count: Ask D365 for the total count

        Returns:
            {"records": [...internal records], "count": total (when requested)}
        """
        pass

    @abstractmethod
    async def get_record(self, entity: str, record_id: str) -> Dict[str, Any]:
        """Get one record by id, mapped to internal field names"""
        pass

    @abstractmethod
    async def create_record(self, entity: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create a record from internal field names.

        Returns:
            {"id": new record id, "entityId": record URL}
        """
        pass

    @abstractmethod
    async def update_record(self, entity: str, record_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Update a record from internal field names"""
        pass

    # Contacts and leads
    @abstractmethod
    async def search_contacts(self, term: str, top: int = 50) -> List[Dict[str, Any]]:
        """Contacts whose name or email contains the term"""
        pass

    @abstractmethod
    async def get_contact_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """First contact with the given primary email, or None"""
        pass

    @abstractmethod
    async def update_lead_status(
        self, lead_id: str, statecode: Optional[int] = None, statuscode: Optional[int] = None
    ) -> Dict[str, Any]:
        """Set statecode/statuscode of a lead"""
        pass

    @abstractmethod
    async def capture_web_lead(self, form: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a lead from the website lead form"""
        pass

    @abstractmethod
    async def capture_web_contact(self, form: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a contact from the website contact form"""
        pass

    # Reporting
    @abstractmethod
    async def get_dashboard(self) -> Dict[str, Any]:
        """Totals, pipeline value and recent activity"""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Counts, last-30-day counts and web conversion rate"""
        pass

    @abstractmethod
    async def export_records(self, entity: str) -> Dict[str, Any]:
        """All records of contacts or leads as internal records"""
        pass

    @abstractmethod
    async def export_csv(self, entity: str) -> str:
        """All records of contacts or leads as CSV text"""
        pass

    # Metadata
    @abstractmethod
    async def get_entity_metadata(self, entity: str) -> Dict[str, Any]:
        """
        Attribute names and types of one entity.

        Args:
            entity: Collection name (`contacts`) or logical name (`contact`)

        Returns:
            `{"logicalName": ..., "attributes": [{"logicalName", "attributeType"}, ...]}`
        """
        pass

    # Connectivity
    @abstractmethod
    async def who_am_i(self) -> Dict[str, Any]:
        """Result of the WhoAmI function"""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """True if WhoAmI succeeds"""
        pass

    @abstractmethod
    async def check_auth(self) -> Dict[str, Any]:
        """Acquire a token and call WhoAmI, reporting both"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close service connections and cleanup"""
        pass
