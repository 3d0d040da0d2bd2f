"""
Status Reconciler
Tests — operator CLI (status-reconciler).

Each command is driven through ``main(argv, app=app)`` against the test
database; exit codes and written reports are asserted.
"""

import glob
import json
import os

import pytest
from sqlalchemy import func, select

from status_reconciler.cli import NOT_READY_EXIT, main
from status_reconciler.models import db
from status_reconciler.models.migration_log import StatusMigrationLog
from status_reconciler.models.workflow import Order, Shipment


def _latest_report(app, name):
    paths = sorted(glob.glob(os.path.join(app.config["REPORTS_DIR"], f"{name}-*.json")))
    assert paths, f"no {name} report written"
    with open(paths[-1], encoding="utf-8") as fh:
        return json.load(fh)


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


def test_no_command_prints_help(app, capsys):
    assert main([], app=app) == 2
    assert "status-reconciler" in capsys.readouterr().out


def test_unknown_entity_is_rejected(app):
    with pytest.raises(SystemExit):
        main(["coverage", "--entity", "Quote"], app=app)


def test_validate_env(app):
    assert main(["validate-env"], app=app) == 0


def test_coverage(app, make_order):
    make_order(status="Dispatched", unified_status="DISPATCHED")
    assert main(["coverage", "--entity", "Order"], app=app) == 0
    report = _latest_report(app, "unified-field-coverage")
    assert report["aggregate"]["coverage"] == 100.0


class TestRepair:
    def test_repair_writes_and_logs(self, app, make_order):
        order = make_order(status="Delivered")
        order_id = order.id
        assert main(["repair", "--source", "cli-test"], app=app) == 0
        db.session.expire_all()
        assert db.session.get(Order, order_id).unified_status == "DELIVERED"
        assert _count(StatusMigrationLog) == 1
        assert _latest_report(app, "status-consistency-repair")["source"] == "cli-test"

    def test_dry_run(self, app, make_order):
        order = make_order(status="Delivered")
        order_id = order.id
        assert main(["repair", "--dry-run"], app=app) == 0
        db.session.expire_all()
        assert db.session.get(Order, order_id).unified_status is None
        assert _count(StatusMigrationLog) == 0


def test_cascade_and_root_cause(app, make_pr, make_shipment):
    make_pr("PR-1", "PO_CREATED", dispatch_status="SHIPPED")
    make_shipment("SHP-9", "PR-9")
    assert main(["cascade"], app=app) == 0
    assert _latest_report(app, "cascade-integrity")["summary"]["totalIssues"] == 2
    assert main(["root-cause"], app=app) == 0
    assert _latest_report(app, "cascade-root-cause")["totalProblematic"] == 1


class TestCleanup:
    def test_plan_then_execute(self, app, make_shipment, tmp_path):
        make_shipment("SHP-404", "PR-404")
        assert main(["cleanup-plan", "--backups-dir", str(tmp_path)], app=app) == 0
        assert _count(Shipment) == 1

        plan_path = glob.glob(os.path.join(str(tmp_path), "orphaned-records-*", "cleanup-plan.json"))[0]
        with open(plan_path, encoding="utf-8") as fh:
            plan_id = json.load(fh)["planId"]

        assert main(["cleanup-execute", "--plan", plan_path, "--confirm", "not-the-id"], app=app) == 1
        assert _count(Shipment) == 1

        assert main(["cleanup-execute", "--plan", plan_path, "--confirm", plan_id], app=app) == 0
        db.session.expire_all()
        assert _count(Shipment) == 0
        assert _latest_report(app, "orphan-cleanup-execute")["deleted"] == {"shipments": 1}


def test_log_markers(app):
    assert main(["log-start", "--notes", "rehearsal"], app=app) == 0
    assert main(["log-complete"], app=app) == 0
    actions = db.session.execute(
        select(StatusMigrationLog.action).order_by(StatusMigrationLog.id)
    ).scalars().all()
    assert actions == ["MIGRATION_START", "MIGRATION_COMPLETE"]


class TestReadiness:
    def test_ready_dataset(self, app):
        assert main(["readiness", "--fail-if-not-ready"], app=app) == 0
        assert _latest_report(app, "rollout-readiness")["finalVerdict"] == "READY"

    def test_not_ready_gates_ci(self, app, make_order):
        for _ in range(3):
            make_order(status="Dispatched")
        assert main(["readiness"], app=app) == 0
        assert main(["readiness", "--fail-if-not-ready"], app=app) == NOT_READY_EXIT
