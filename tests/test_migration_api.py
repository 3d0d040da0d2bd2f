"""
Status Reconciler
Tests — migration reporting API (read-only blueprint) and health check.
"""

from status_reconciler.models import db
from status_reconciler.models.migration_log import write_migration_log


def _log(**kw):
    params = {"entity_type": "Order", "entity_id": "o-1", "action": "STATUS_SYNC", "source": "repair"}
    params.update(kw)
    log = write_migration_log(**params)
    db.session.commit()
    return log.id


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert res.headers["X-Request-ID"]
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nothing-here"


class TestLogs:
    def test_list_filters_and_paginates(self, client):
        _log(entity_id="o-1")
        _log(entity_id="o-2")
        _log(entity_type="PO", entity_id="p-1", action="STATUS_REPAIR", source="strict-repair")

        res = client.get("/api/v1/migration/logs?entity_type=Order&limit=1")
        data = res.get_json()
        assert res.status_code == 200
        assert data["total"] == 2
        assert data["limit"] == 1
        assert len(data["items"]) == 1

        res = client.get("/api/v1/migration/logs?source=strict-repair")
        assert [i["entityId"] for i in res.get_json()["items"]] == ["p-1"]

    def test_time_window(self, client):
        _log()
        assert client.get("/api/v1/migration/logs?since=2000-01-01T00:00:00Z").get_json()["total"] == 1
        assert client.get("/api/v1/migration/logs?until=2000-01-01T00:00:00").get_json()["total"] == 0

    def test_bad_timestamp(self, client):
        res = client.get("/api/v1/migration/logs?since=yesterday")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_get_one(self, client):
        log_id = _log(new_unified_status="DELIVERED")
        res = client.get(f"/api/v1/migration/logs/{log_id}")
        assert res.status_code == 200
        assert res.get_json()["newUnifiedStatus"] == "DELIVERED"

    def test_get_missing(self, client):
        res = client.get("/api/v1/migration/logs/9999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_summary(self, client):
        _log()
        _log(action="STATUS_UPDATE", source="status-engine")
        data = client.get("/api/v1/migration/logs/summary").get_json()
        assert data == {
            "total": 2,
            "byAction": {"STATUS_SYNC": 1, "STATUS_UPDATE": 1},
            "bySource": {"repair": 1, "status-engine": 1},
        }


class TestReports:
    def test_coverage(self, client, make_order):
        make_order(status="Dispatched")
        data = client.get("/api/v1/migration/coverage").get_json()
        assert data["aggregate"]["total"] == 1
        assert data["aggregate"]["withUnified"] == 0

    def test_cascade(self, client, make_shipment):
        make_shipment("SHP-1", "PR-404")
        data = client.get("/api/v1/migration/cascade").get_json()
        assert data["checks"]["orphanedShipments"]["count"] == 1
        assert data["summary"]["healthy"] is False

    def test_readiness(self, client):
        data = client.get("/api/v1/migration/readiness").get_json()
        assert data["finalVerdict"] == "READY"
        assert set(data["sections"]) == set("ABCDEFG")

    def test_bad_flag_is_configuration_error(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "SAFE_MODE", "perhaps")
        res = client.get("/api/v1/migration/readiness")
        assert res.status_code == 500
        body = res.get_json()
        assert body["code"] == "ERR_CONFIGURATION"
        assert body["details"] == {"key": "SAFE_MODE"}

    def test_reports_are_read_only(self, client):
        res = client.post("/api/v1/migration/coverage")
        assert res.status_code == 405
