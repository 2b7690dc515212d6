"""
FastAPI application exposing the CRM proxy over REST
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
import structlog

from .. import __version__
from ..auth import D365Error
from ..di_container import DIContainer
from .dependencies import get_container
from .responses import ApiError, fail, ok, render_api_error, status_for
from .routes import contacts_router, crm_router, d365_router

logger = structlog.get_logger(__name__)


def _validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


def create_app(container: Optional[DIContainer] = None) -> FastAPI:
    """Build the REST app around a container (a fresh one from settings by default)"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or DIContainer()
        settings = app.state.container.settings
        if not settings.is_d365_configured and settings.d365_client != "mock":
            logger.warning("Dynamics 365 credentials missing", missing=settings.missing_credentials())
        logger.info("REST API started", app_env=settings.app_env, d365_api_url=settings.d365_api_url)
        try:
            yield
        finally:
            await app.state.container.close()
            logger.info("REST API stopped")

    app = FastAPI(title="D365 CRM Proxy", version=__version__, lifespan=lifespan)

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        production = get_container(request).settings.is_production
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                path=request.url.path,
                message=exc.message,
                error=str(exc.cause) if exc.cause else None,
            )
        return render_api_error(exc, production)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return fail(400, "Validation failed", errors=_validation_errors(exc.errors()))

    @app.exception_handler(ValidationError)
    async def handle_model_validation(request: Request, exc: ValidationError):
        return fail(400, "Validation failed", errors=_validation_errors(exc.errors()))

    @app.exception_handler(D365Error)
    async def handle_d365_error(request: Request, exc: D365Error):
        status_code = status_for(exc)
        if status_code < 500:
            return fail(status_code, str(exc))
        production = get_container(request).settings.is_production
        logger.error("Unhandled D365 error", path=request.url.path, error=str(exc))
        return fail(status_code, "Internal server error", None if production else str(exc))

    @app.get("/health")
    async def health():
        return ok({
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        })

    app.include_router(d365_router)
    app.include_router(crm_router)
    app.include_router(contacts_router)

    return app
