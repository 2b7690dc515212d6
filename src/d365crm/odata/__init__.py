"""OData query building for the Dataverse Web API"""

from .query import (
    QuerySpec,
    ODataRequestBuilder,
    InvalidRecordId,
    escape_odata_string,
    contains_any,
    equals,
    normalize_record_id,
)

__all__ = [
    "QuerySpec",
    "ODataRequestBuilder",
    "InvalidRecordId",
    "escape_odata_string",
    "contains_any",
    "equals",
    "normalize_record_id",
]
