"""Shared utilities for analytics core modules: error taxonomy and numeric coercion."""

from __future__ import annotations

import logging
import math
from decimal import Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)


# ============================================================
# Errors
# ============================================================

class AnalyticsError(Exception):
    """Base for errors that map onto an HTTP status in the response envelope."""

    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class ValidationError(AnalyticsError):
    """Missing or malformed required identifier."""

    status_code = 400
    public_message = "Bad Request"


class NotFoundError(AnalyticsError):
    """Primary-key lookup yielded nothing."""

    status_code = 404
    public_message = "Not Found"


class UpstreamQueryError(AnalyticsError):
    """Store unreachable, query failed, or a query exceeded its time budget."""


class InternalFormattingError(AnalyticsError):
    """A derived computation received a value of unexpected shape."""


# ============================================================
# Numeric coercion
# ============================================================

def _to_decimal(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InternalFormattingError(f"boolean in numeric field '{field}'")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation:
            raise InternalFormattingError(f"non-numeric value in field '{field}'") from None
    raise InternalFormattingError(
        f"unsupported type {type(value).__name__} in field '{field}'"
    )


def to_int(value: Any, default: int = 0, field: str = "value") -> int:
    """Coerce a store value (int, Decimal, numeric string, None) to int."""
    dec = _to_decimal(value, field)
    if dec is None or not dec.is_finite():
        return default
    return int(dec.to_integral_value())


def to_float(value: Any, default: float = 0.0, field: str = "value", ndigits: int | None = None) -> float:
    """Coerce a store value to float; None and NaN become the default."""
    dec = _to_decimal(value, field)
    if dec is None or not dec.is_finite():
        return default
    result = float(dec)
    if ndigits is not None:
        result = round(result, ndigits)
    return result


def coerce_row(
    row: dict | None,
    ints: tuple[str, ...] = (),
    floats: tuple[str, ...] = (),
) -> dict:
    """Return a copy of row with the named fields coerced to numbers.

    Missing fields get the numeric default. Fields not named are copied
    through unchanged.
    """
    out = dict(row or {})
    for name in ints:
        out[name] = to_int(out.get(name), field=name)
    for name in floats:
        out[name] = to_float(out.get(name), field=name)
    return out
