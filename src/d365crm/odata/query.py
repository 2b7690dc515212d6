"""
OData Request Builder

Composes Dataverse resource paths and system query options.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional
from urllib.parse import quote

from ..auth.interface import D365Error

_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

# Characters left readable in $filter / $orderby values; everything else is percent-encoded
_EXPRESSION_SAFE = "(),'"
_EXPAND_SAFE = _EXPRESSION_SAFE + "$=;"


class InvalidRecordId(D365Error, ValueError):
    """Record id is not a GUID"""
    pass


@dataclass
class QuerySpec:
    """System query options for one OData request"""

    select: List[str] = field(default_factory=list)
    expand: Optional[str] = None
    filter: Optional[str] = None
    order_by: Optional[str] = None
    top: Optional[int] = None
    skip: Optional[int] = None
    count: bool = False


def escape_odata_string(value: str) -> str:
    """Escape a value for use inside a single-quoted OData string literal"""
    return str(value).replace("'", "''")


def contains_any(fields: Iterable[str], term: str) -> str:
    """`contains(f1,'term') or contains(f2,'term') ...` with the term escaped"""
    escaped = escape_odata_string(term)
    return " or ".join(f"contains({name},'{escaped}')" for name in fields)


def equals(field_name: str, value: str) -> str:
    """`field eq 'value'` with the value escaped"""
    return f"{field_name} eq '{escape_odata_string(value)}'"


def normalize_record_id(record_id: str) -> str:
    """Strip braces/whitespace and check the id is a GUID"""
    candidate = str(record_id).strip().strip("{}")
    if not _GUID_RE.match(candidate):
        raise InvalidRecordId(f"Invalid record id: {record_id!r}")
    return candidate.lower()


class ODataRequestBuilder:
    """Builds relative resource URLs such as `contacts(<id>)?$select=...&$top=5`"""

    def build(
        self,
        collection: str,
        query: Optional[QuerySpec] = None,
        record_id: Optional[str] = None,
        key: Optional[Mapping[str, str]] = None,
    ) -> str:
        path = self.resource_path(collection, record_id, key)
        query_string = self.query_string(query) if query else ""
        return f"{path}?{query_string}" if query_string else path

    def resource_path(
        self,
        collection: str,
        record_id: Optional[str] = None,
        key: Optional[Mapping[str, str]] = None,
    ) -> str:
        """`contacts`, `contacts(<guid>)` or an alternate key such as `EntityDefinitions(LogicalName='contact')`"""
        if not _IDENTIFIER_RE.match(collection or ""):
            raise ValueError(f"Invalid entity collection name: {collection!r}")
        if record_id is not None and key:
            raise ValueError("Use either a record id or an alternate key, not both")
        if key:
            return f"{collection}({self.key_segment(key)})"
        if record_id is None:
            return collection
        return f"{collection}({normalize_record_id(record_id)})"

    def key_segment(self, key: Mapping[str, str]) -> str:
        """`Name='value',Other='x'` with names validated and values escaped"""
        pairs = []
        for name, value in key.items():
            if not _IDENTIFIER_RE.match(name or ""):
                raise ValueError(f"Invalid alternate key name: {name!r}")
            pairs.append(f"{name}='{quote(escape_odata_string(value), safe=_EXPRESSION_SAFE)}'")
        return ",".join(pairs)

    def query_string(self, query: QuerySpec) -> str:
        parts: List[str] = []

        if query.select:
            for name in query.select:
                if not _IDENTIFIER_RE.match(name):
                    raise ValueError(f"Invalid $select field: {name!r}")
            parts.append(f"$select={','.join(query.select)}")

        if query.expand:
            parts.append(f"$expand={quote(query.expand, safe=_EXPAND_SAFE)}")

        if query.filter:
            parts.append(f"$filter={quote(query.filter, safe=_EXPRESSION_SAFE)}")

        if query.order_by:
            parts.append(f"$orderby={quote(query.order_by, safe=_EXPRESSION_SAFE)}")

        if query.top is not None:
            parts.append(f"$top={_non_negative(query.top, '$top')}")

        if query.skip is not None:
            parts.append(f"$skip={_non_negative(query.skip, '$skip')}")

        if query.count:
            parts.append("$count=true")

        return "&".join(parts)

    def build_function(self, name: str) -> str:
        """Unbound function or action path, e.g. `WhoAmI`"""
        if not _IDENTIFIER_RE.match(name or ""):
            raise ValueError(f"Invalid function name: {name!r}")
        return name


def _non_negative(value: int, option: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"{option} must be non-negative, got {value}")
    return number
