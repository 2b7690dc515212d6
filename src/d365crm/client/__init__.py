"""
D365 Client module

Request proxy for the Dynamics 365 (Dataverse) OData Web API.
"""

from .interface import ID365Client, UpstreamError, HttpMethod
from .proxy import RequestProxy, describe_upstream_error, extract_record_id

__all__ = [
    "ID365Client",
    "UpstreamError",
    "HttpMethod",
    "RequestProxy",
    "describe_upstream_error",
    "extract_record_id",
]
