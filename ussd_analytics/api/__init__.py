"""USSD Analytics REST API: read-only dashboard endpoints.

Route modules export a register_routes(router, svc) function that adds
their endpoints from a static route table.
"""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from ussd_analytics import __version__
from ussd_analytics.api.utils import error_response
from ussd_analytics.core.services import Services

logger = logging.getLogger(__name__)


def create_api(svc: Services) -> FastAPI:
    """Build the REST API as a FastAPI app with every route under the configured prefix."""
    db = svc.db
    config = svc.config

    def _release_db_conn():
        """Safety net: release DB connection after each API request.

        Primary cleanup is in the route handlers, on the thread that ran
        the queries.
        """
        yield
        db.release_if_held()

    app = FastAPI(
        title="USSD Analytics API",
        version=__version__,
        description="Read-only analytics over the USSD transaction ledger.",
        docs_url=f"{config.api_prefix}/swagger",
        openapi_url=f"{config.api_prefix}/openapi.json",
        redoc_url=None,
        dependencies=[Depends(_release_db_conn)],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, exc.detail if exc.status_code < 500 else None)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request %s: %d validation error(s)", request.url.path, len(exc.errors()))
        return error_response(400)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return error_response(500)

    router = APIRouter()

    from ussd_analytics.api.analytics import register_routes as reg_analytics

    reg_analytics(router, svc)

    app.include_router(router, prefix=config.api_prefix)
    return app
