"""Analytics endpoints, declared as one static route table."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from ussd_analytics.api.utils import enveloped
from ussd_analytics.core.services import Services
from ussd_analytics.core.status import get_status


def register_routes(router: APIRouter, svc: Services, **kw):
    analytics = svc.analytics

    def _run(operation, fn) -> JSONResponse:
        # Release on the handler thread; the request dependency may tear down elsewhere.
        try:
            return enveloped(operation, fn)
        finally:
            svc.db.release_if_held()

    def get_transaction(transaction_id: str) -> JSONResponse:
        return _run("get_transaction", lambda: analytics.get_transaction(transaction_id))

    def get_transaction_missing_id() -> JSONResponse:
        return _run("get_transaction", lambda: analytics.get_transaction(None))

    def transaction_volume(range_token: str | None = None, service: str | None = None) -> JSONResponse:
        return _run(
            "transaction_volume",
            lambda: analytics.transaction_volume(range_token, service),
        )

    def transaction_volume_default(
        range_token: str | None = Query(None, alias="range"),
        service: str | None = Query(None),
    ) -> JSONResponse:
        return transaction_volume(range_token, service)

    def success_rate(range_token: str) -> JSONResponse:
        return _run("gauge_stats", lambda: analytics.gauge_stats(range_token))

    def success_rate_query(range_token: str | None = Query(None, alias="range")) -> JSONResponse:
        return _run("gauge_stats", lambda: analytics.gauge_stats(range_token))

    def revenue_trends(range_token: str) -> JSONResponse:
        return _run("revenue_trends", lambda: analytics.revenue_trends(range_token))

    def revenue_trends_query(range_token: str | None = Query(None, alias="range")) -> JSONResponse:
        return _run("revenue_trends", lambda: analytics.revenue_trends(range_token))

    def demographics() -> JSONResponse:
        return _run("demographics", analytics.demographics)

    def peak_hours() -> JSONResponse:
        return _run("peak_hours", analytics.peak_hours)

    def status() -> JSONResponse:
        return _run("status", lambda: get_status(svc.store, svc.config))

    routes = [
        ("GET", "/transaction/{transaction_id}", get_transaction),
        ("GET", "/transaction", get_transaction_missing_id),
        ("GET", "/transaction/", get_transaction_missing_id),
        ("GET", "/transactions/volume/{range_token}/{service}", transaction_volume),
        ("GET", "/transactions/volume/{range_token}", transaction_volume),
        ("GET", "/transactions/volume", transaction_volume_default),
        ("GET", "/transactions/success-rate/{range_token}", success_rate),
        ("GET", "/transactions/success-rate", success_rate_query),
        ("GET", "/revenue/trends/{range_token}", revenue_trends),
        ("GET", "/revenue/trends", revenue_trends_query),
        ("GET", "/users/demographics", demographics),
        ("GET", "/peak-hours", peak_hours),
        ("GET", "/status", status),
    ]

    for method, path, handler in routes:
        router.add_api_route(path, handler, methods=[method], name=handler.__name__)
