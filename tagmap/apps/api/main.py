from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from tagmap.apps.api.errors import (
    http_exception_handler,
    starlette_http_exception_handler,
    tagmap_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from tagmap.apps.api.openapi import PUBLIC_PATHS
from tagmap.apps.api.response import API_VERSION
from tagmap.apps.api.routes.health import router as health_router
from tagmap.apps.api.routes.subscriptions import router as subscriptions_router
from tagmap.apps.api.routes.tags import router as tags_router
from tagmap.apps.api.routes.threshold import router as threshold_router
from tagmap.apps.api.routes.users import router as users_router
from tagmap.core.config import get_settings
from tagmap.core.errors import TagMapError
from tagmap.core.logging import configure_logging
from tagmap.services.container import Services, build_services
from tagmap.services.telemetry import record_request


logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the HTTP app.

    Passing ``services`` wires them immediately and leaves their lifetime to
    the caller (tests do this). Without it the services are built on startup
    and closed on shutdown.
    """
    configure_logging()
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.services is None
        if owned:
            app.state.services = build_services(settings)
        logger.info("app_started name=%s", settings.app_name)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
                app.state.services = None

    app = FastAPI(title="TagMap API", version=API_VERSION, lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(TagMapError)
    async def _tagmap_exception_handler(request: Request, exc: TagMapError):
        return await tagmap_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(tags_router, prefix=f"/{API_VERSION}")
    app.include_router(users_router, prefix=f"/{API_VERSION}")
    app.include_router(threshold_router, prefix=f"/{API_VERSION}")
    app.include_router(subscriptions_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Inject bearer auth into the schema; public reads stay unauthenticated.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="TagMap API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            for method, operation in operations.items():
                if path in PUBLIC_PATHS and method == "get":
                    continue
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi  # type: ignore[method-assign]

    return app


app = create_app()
