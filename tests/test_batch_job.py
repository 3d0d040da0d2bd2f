"""
Status Reconciler
Tests — batch job harness, pre-flight checks and log formatting.
"""

import json
import logging
import os

import pytest
from sqlalchemy.exc import OperationalError

from status_reconciler.core.exceptions import StoreUnavailableError
from status_reconciler.middleware.logging_config import JSONFormatter
from status_reconciler.models import db
from status_reconciler.services import batch_job
from status_reconciler.services.batch_job import (
    check_connectivity,
    report_filename,
    run_batch_job,
    write_json_report,
)
from status_reconciler.services.preflight import check_environment, mask_database_url


# ═════════════════════════════════════════════════════════════════════════════
# HARNESS
# ═════════════════════════════════════════════════════════════════════════════

class TestRunBatchJob:
    def test_runs_work_with_parsed_flags(self, app):
        seen = []

        def work(flags):
            seen.append(flags)
            return {"ok": True}

        assert run_batch_job("unit", work, app=app) == 0
        assert seen[0].safe_mode is True

    def test_store_unreachable_exits_before_work(self, app, monkeypatch):
        def _down():
            raise StoreUnavailableError("Database unreachable: connection refused")

        monkeypatch.setattr(batch_job, "check_connectivity", _down)
        called = []
        assert run_batch_job("unit", lambda flags: called.append(flags), app=app) == 1
        assert called == []

    def test_bad_flag_exits_before_work(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "DUAL_WRITE_ENABLED", "maybe")
        called = []
        assert run_batch_job("unit", lambda flags: called.append(flags), app=app) == 1
        assert called == []

    def test_job_exit_code_is_returned(self, app):
        assert run_batch_job("unit", lambda flags: {"exit_code": 2}, app=app) == 2

    def test_report_is_written(self, app):
        run_batch_job("unit", lambda flags: {"answer": 42}, app=app, report_name="unit-report")
        reports = [f for f in os.listdir(app.config["REPORTS_DIR"]) if f.startswith("unit-report-")]
        assert reports
        with open(os.path.join(app.config["REPORTS_DIR"], reports[0]), encoding="utf-8") as fh:
            assert json.load(fh) == {"answer": 42}


class TestHelpers:
    def test_check_connectivity_wraps_driver_error(self, monkeypatch):
        def _boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("no route to host"))

        monkeypatch.setattr(db.session, "execute", _boom)
        with pytest.raises(StoreUnavailableError):
            check_connectivity()

    def test_report_filename(self):
        from datetime import UTC, datetime
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert report_filename("cascade-integrity", when) == "cascade-integrity-20260102T030405Z.json"

    def test_write_json_report_creates_dir(self, tmp_path):
        path = write_json_report(str(tmp_path / "nested"), "x", {"when": tmp_path})
        with open(path, encoding="utf-8") as fh:
            assert json.load(fh) == {"when": str(tmp_path)}


# ═════════════════════════════════════════════════════════════════════════════
# PRE-FLIGHT
# ═════════════════════════════════════════════════════════════════════════════

class TestPreflight:
    @pytest.mark.parametrize("url, expected", [
        ("postgresql://app:s3cr3t@db:5432/uniforms", "postgresql://app:***@db:5432/uniforms"),
        ("sqlite:///:memory:", "sqlite:///:memory:"),
        (None, None),
    ])
    def test_mask_database_url(self, url, expected):
        assert mask_database_url(url) == expected

    def test_all_checks_pass(self, app):
        result = check_environment(app)
        assert result["ok"] is True
        names = [c["name"] for c in result["checks"]]
        assert names[:2] == ["Database URL", "Database connectivity"]
        assert "BACKUPS_DIR" in names

    def test_bad_flag_fails(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "READ_FROM_UNIFIED", "sometimes")
        result = check_environment(app)
        assert result["ok"] is False
        failed = [c["name"] for c in result["checks"] if c["status"] == "FAIL"]
        assert failed == ["READ_FROM_UNIFIED"]

    def test_unwritable_reports_dir_fails(self, app, monkeypatch, tmp_path):
        blocker = tmp_path / "a-file"
        blocker.write_text("x")
        monkeypatch.setitem(app.config, "REPORTS_DIR", str(blocker / "reports"))
        result = check_environment(app)
        assert result["ok"] is False


# ═════════════════════════════════════════════════════════════════════════════
# LOG FORMAT
# ═════════════════════════════════════════════════════════════════════════════

def test_json_formatter_carries_extra_fields():
    record = logging.LogRecord("status_reconciler.x", logging.INFO, __file__, 1, "repaired %s", ("o-1",), None)
    record.entity_type = "Order"
    record.job = "consistency-repair"
    data = json.loads(JSONFormatter().format(record))
    assert data["message"] == "repaired o-1"
    assert data["entity_type"] == "Order"
    assert data["job"] == "consistency-repair"
    assert "entity_id" not in data
