"""Tests for the REST surface: routing, envelopes, and status codes."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from ussd_analytics import __version__
from ussd_analytics.api import create_api
from ussd_analytics.config import AnalyticsConfig, Config
from ussd_analytics.core.filters import Equals, NoFilter, OneOf
from ussd_analytics.core.utils import InternalFormattingError, UpstreamQueryError
from tests.helpers import make_gauge_store, make_services


@pytest.fixture
def store():
    return make_gauge_store()


@pytest.fixture
def svc(store):
    services = make_services(store)
    yield services
    services.analytics.close()


@pytest.fixture
def client(svc):
    return TestClient(create_api(svc))


class TestTransactionLookup:
    def test_found(self, client, store):
        store.transaction_by_id.return_value = {"transaction_id": "TX1", "transaction_amount": 50.0}
        resp = client.get("/api/transaction/TX1")
        assert resp.status_code == 200
        assert resp.json() == {
            "code": 200,
            "success": True,
            "payload": {"transaction_id": "TX1", "transaction_amount": 50.0},
        }

    def test_not_found(self, client, store):
        store.transaction_by_id.return_value = None
        resp = client.get("/api/transaction/TX404")
        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == 404
        assert body["success"] is False
        assert "TX404" in body["error"]
        assert "payload" not in body

    @pytest.mark.parametrize("path", ["/api/transaction", "/api/transaction/"])
    def test_missing_id(self, client, store, path):
        resp = client.get(path)
        assert resp.status_code == 400
        assert resp.json() == {
            "code": 400, "success": False, "error": "transaction_id is required",
        }
        store.transaction_by_id.assert_not_called()


class TestVolumeRoutes:
    def test_range_and_service_in_path(self, client, store):
        store.volume_by_bucket.return_value = []
        resp = client.get("/api/transactions/volume/24h/water")
        assert resp.status_code == 200
        assert resp.json()["payload"] == []
        window, predicate = store.volume_by_bucket.call_args[0]
        assert window.token == "24h"
        assert window.granularity == "hour"
        assert predicate == Equals("water_bill_payment")

    def test_range_only(self, client, store):
        store.volume_by_bucket.return_value = []
        client.get("/api/transactions/volume/30d")
        window, predicate = store.volume_by_bucket.call_args[0]
        assert window.token == "30d"
        assert predicate == NoFilter()

    def test_query_parameters(self, client, store):
        store.volume_by_bucket.return_value = []
        client.get("/api/transactions/volume", params={"range": "90d", "service": "mobileMoney"})
        window, predicate = store.volume_by_bucket.call_args[0]
        assert window.token == "90d"
        assert predicate == OneOf(("money_transfer", "bill_payment"))

    def test_bad_tokens_fall_back(self, client, store):
        store.volume_by_bucket.return_value = []
        resp = client.get("/api/transactions/volume/forever/gas")
        assert resp.status_code == 200
        window, predicate = store.volume_by_bucket.call_args[0]
        assert window.token == "7d"
        assert predicate == NoFilter()

    def test_payload_rows(self, client, store):
        store.volume_by_bucket.return_value = [{
            "bucket": datetime(2024, 6, 10, tzinfo=timezone.utc),
            "total": 3, "electricity": 1, "water": 0, "airtime": 2,
            "mobile_money": 0, "banking": 0, "avg_session_time": 40.0,
            "success_rate": 100.0, "revenue": 15.0, "failed": 0, "distinct_sessions": 2,
        }]
        rows = client.get("/api/transactions/volume/7d").json()["payload"]
        assert rows[0]["label"] == "2024-06-10"
        assert rows[0]["mobileMoney"] == 0
        assert rows[0]["peakConcurrentUsers"] == 2


class TestSuccessRate:
    def test_path_form(self, client):
        resp = client.get("/api/transactions/success-rate/30d")
        assert resp.status_code == 200
        payload = resp.json()["payload"]
        assert payload["metrics"]["trend"] == 50.0
        assert payload["metrics"]["peakHour"] == "2 PM"
        assert len(payload["networks"]) == 3

    def test_query_form(self, client, store):
        resp = client.get("/api/transactions/success-rate", params={"range": "24h"})
        assert resp.status_code == 200
        assert store.general_metrics.call_count == 1

    def test_upstream_failure_hides_details(self, client, store):
        store.general_metrics.side_effect = UpstreamQueryError("query 'general' failed")
        resp = client.get("/api/transactions/success-rate/30d")
        assert resp.status_code == 500
        assert resp.json() == {
            "code": 500, "success": False, "error": "Internal Server Error",
        }


class TestRevenue:
    def test_path_and_query_forms(self, client, store):
        store.revenue_trends.return_value = [{
            "date": datetime(2024, 6, 10, tzinfo=timezone.utc),
            "electricity": 10.0, "water": 5.0, "airtime": 0.0,
            "mobile_money": 0.0, "total": 15.0,
        }]
        a = client.get("/api/revenue/trends/30d").json()
        b = client.get("/api/revenue/trends", params={"range": "30d"}).json()
        assert a == b
        assert a["payload"][0]["date"] == "2024-06-10"

    def test_unexpected_error_is_500(self, client, store):
        store.revenue_trends.side_effect = KeyError("date")
        resp = client.get("/api/revenue/trends/7d")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal Server Error"

    def test_formatting_error_is_500(self, client, store):
        store.revenue_trends.side_effect = InternalFormattingError("non-numeric value in field 'total'")
        resp = client.get("/api/revenue/trends/7d")
        assert resp.status_code == 500
        assert "total" not in resp.json()["error"]


class TestDemographicsAndHeatmap:
    def test_demographics(self, client, store):
        store.unique_user_count.return_value = 200
        store.distribution_by.return_value = []
        payload = client.get("/api/users/demographics").json()["payload"]
        assert payload["totalUsers"] == 200
        assert payload["provinceData"] == [{"name": "Other Provinces", "users": 0}]
        assert payload["genderData"][0] == {"name": "Male", "percentage": 58, "users": 116}

    def test_peak_hours(self, client, store):
        store.raw_hourly_counts.return_value = []
        payload = client.get("/api/peak-hours").json()["payload"]
        assert len(payload) == 84
        assert payload[0] == {"day": "Mon", "hour": "00-02", "value": 0, "intensity": 0, "isPeak": False}


class TestPlumbing:
    def test_unknown_route_is_enveloped(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json() == {"code": 404, "success": False, "error": "Not Found"}

    def test_post_not_allowed(self, client):
        resp = client.post("/api/peak-hours")
        assert resp.status_code == 405
        assert resp.json()["success"] is False

    def test_connection_released_after_request(self, client, store):
        store.raw_hourly_counts.return_value = []
        client.get("/api/peak-hours")
        assert store.db.release_if_held.called

    def test_status(self, client, store):
        store.ping.return_value = True
        payload = client.get("/api/status").json()["payload"]
        assert payload["version"] == __version__
        assert payload["status"] == "healthy"
        assert payload["database"]["reachable"] is True

    def test_status_degraded(self, client, store):
        store.ping.side_effect = UpstreamQueryError()
        resp = client.get("/api/status")
        assert resp.status_code == 200
        assert resp.json()["payload"]["status"] == "degraded"

    def test_empty_prefix(self, store):
        services = make_services(store, Config(api_prefix="", analytics=AnalyticsConfig(query_timeout=2.0)))
        try:
            store.raw_hourly_counts.return_value = []
            resp = TestClient(create_api(services)).get("/peak-hours")
            assert resp.status_code == 200
        finally:
            services.analytics.close()
