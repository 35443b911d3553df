"""Shared utilities for API route modules: the response envelope."""

from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi.responses import JSONResponse

from ussd_analytics.core.utils import AnalyticsError

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
}


def success_response(payload: Any, code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content={"code": code, "success": True, "payload": payload},
    )


def error_response(code: int, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content={
            "code": code,
            "success": False,
            "error": error or _STATUS_MESSAGES.get(code, "Error"),
        },
    )


def enveloped(operation: str, fn: Callable[[], Any]) -> JSONResponse:
    """Run an endpoint body and wrap its result or failure in the envelope.

    Client errors carry their message; server errors only carry the
    generic status text.
    """
    try:
        return success_response(fn())
    except AnalyticsError as exc:
        if exc.status_code < 500:
            logger.warning("%s: %s", operation, exc)
            return error_response(exc.status_code, str(exc))
        logger.error("%s failed: %s", operation, exc, exc_info=True)
        return error_response(exc.status_code)
    except Exception:
        logger.exception("%s failed", operation)
        return error_response(500)
