"""
HTTP API for the UAT Routing Service.

Endpoints:
- POST /api/uat-routing        route one work item
- POST /api/uat-routing/batch  route several work items
- GET  /api/health             liveness check
"""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .config import AppConfig
from .errors import NotFoundError, RoutingError, UpstreamError
from .models import (
    BatchResponse,
    BatchRoutingRequest,
    ErrorResponse,
    HealthResponse,
    RoutingRequest,
    RoutingResponse,
)
from .service import RoutingService, utc_timestamp


logger = logging.getLogger(__name__)


def _error_response(status_code: int, exc: Exception, config: AppConfig) -> JSONResponse:
    stack = None
    if not config.is_production:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    body = ErrorResponse(error=str(exc), stack=stack)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location or 'body'}: {first.get('msg', 'invalid value')}"


def create_router(service: RoutingService) -> APIRouter:
    """Build the API routes bound to a routing service."""
    router = APIRouter()

    @router.post(
        "/uat-routing",
        response_model=RoutingResponse,
        response_model_exclude_none=True,
    )
    def route_work_item(request: RoutingRequest) -> RoutingResponse:
        """Route a single work item."""
        logger.info("UAT routing request received")
        return service.route_ticket(request.id, request.project)

    @router.post(
        "/uat-routing/batch",
        response_model=BatchResponse,
        response_model_exclude_none=True,
    )
    def route_work_items(request: BatchRoutingRequest) -> BatchResponse:
        """Route several work items; failures are reported per item."""
        logger.info(f"UAT routing batch request received for {len(request.ids)} work items")
        return service.route_batch(request.ids, request.project)

    @router.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(timestamp=utc_timestamp(), version=__version__)

    return router


def create_app(service: RoutingService, config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Routing service shared by all requests.
        config: Application configuration (controls error detail).

    Returns:
        Configured FastAPI app.
    """
    config = config or AppConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, closing HTTP clients")
        service.close()

    app = FastAPI(
        title="UAT Routing API",
        description="Routing recommendations for Azure DevOps UAT work items",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(create_router(service), prefix="/api", tags=["routing"])

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = ErrorResponse(error=_validation_message(exc))
        return JSONResponse(status_code=400, content=body.model_dump(exclude_none=True))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.warning(f"Work item not found: {exc}")
        return _error_response(404, exc, config)

    @app.exception_handler(UpstreamError)
    async def handle_upstream(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error(f"Upstream failure: {exc}")
        return _error_response(502, exc, config)

    @app.exception_handler(RoutingError)
    async def handle_routing_error(request: Request, exc: RoutingError) -> JSONResponse:
        logger.error(f"Error processing request: {exc}")
        return _error_response(500, exc, config)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unexpected error processing request: {exc}")
        return _error_response(500, exc, config)

    return app
