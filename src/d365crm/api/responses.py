"""
Response envelopes and error translation for the REST API
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from fastapi.responses import JSONResponse

from ..auth import AuthError, D365Error
from ..client import UpstreamError
from ..mappers import UnknownEntityError
from ..odata import InvalidRecordId
from ..services.crm import EmptyPayloadError


class ApiError(Exception):
    """Failure rendered as `{success: false, message, error?}`"""

    def __init__(
        self,
        status_code: int,
        message: str,
        cause: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.cause = cause
        self.extra = extra or {}


def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def fail(
    status_code: int,
    message: str,
    error: Optional[str] = None,
    **extra: Any,
) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def status_for(error: BaseException) -> int:
    """HTTP status the REST layer answers with for a core exception"""
    if isinstance(error, UnknownEntityError):
        return 404
    if isinstance(error, (InvalidRecordId, EmptyPayloadError, ValueError)):
        return 400
    if isinstance(error, UpstreamError) and error.status == 404:
        return 404
    return 500


@contextmanager
def failure_message(message: str) -> Iterator[None]:
    """Re-raise core errors as ApiError carrying a route-specific message"""
    try:
        yield
    except (D365Error, ValueError) as e:
        raise ApiError(status_for(e), message, cause=e) from e


def render_api_error(error: ApiError, production: bool) -> JSONResponse:
    extra = dict(error.extra)
    detail = None
    if error.cause is not None and not production:
        detail = str(error.cause)
        if isinstance(error.cause, (UpstreamError, AuthError)) and error.cause.body is not None:
            extra["details"] = error.cause.body
    return fail(error.status_code, error.message, detail, **extra)
