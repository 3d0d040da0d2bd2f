"""
Status Reconciler
Tests — migration log store.

Covers:
    - write_migration_log validation
    - Immutability (ORM update / delete refused)
    - Entity and time-range queries
    - MIGRATION_START / MIGRATION_COMPLETE markers
"""

from datetime import UTC, datetime, timedelta

import pytest

from status_reconciler.core.exceptions import ValidationError
from status_reconciler.models import db
from status_reconciler.models.migration_log import (
    MIGRATION_SYSTEM_ID,
    StatusMigrationLog,
    write_migration_log,
)
from status_reconciler.services.migration_log_service import (
    count_by_action,
    count_by_source,
    entity_counts,
    logs_for_entity,
    logs_in_range,
    record_migration_complete,
    record_migration_start,
)


def _write(**kw):
    params = {
        "entity_type": "Shipment",
        "entity_id": "SHP-1",
        "action": "STATUS_SYNC",
        "source": "unit-test",
    }
    params.update(kw)
    log = write_migration_log(**params)
    db.session.commit()
    return log


class TestWrite:
    def test_defaults(self):
        log = _write(new_unified_status="IN_TRANSIT", metadata={"batch": 3})
        assert log.id is not None
        assert log.updated_by == "system"
        assert log.timestamp is not None
        assert log.meta == {"batch": 3}
        data = log.to_dict()
        assert data["entityType"] == "Shipment"
        assert data["newUnifiedStatus"] == "IN_TRANSIT"

    def test_rejects_unknown_entity_type(self):
        with pytest.raises(ValidationError):
            _write(entity_type="Quote")

    def test_rejects_unknown_action(self):
        with pytest.raises(ValidationError) as exc_info:
            _write(action="STATUS_DELETE")
        assert exc_info.value.details == {"action": "STATUS_DELETE"}

    def test_entity_id_stored_as_string(self):
        assert _write(entity_id=42).entity_id == "42"


class TestImmutability:
    def test_update_is_refused(self):
        log = _write()
        log.source = "tampered"
        with pytest.raises(ValidationError):
            db.session.flush()
        db.session.rollback()
        assert db.session.get(StatusMigrationLog, log.id).source == "unit-test"

    def test_delete_is_refused(self):
        log = _write()
        log_id = log.id
        db.session.delete(log)
        with pytest.raises(ValidationError):
            db.session.flush()
        db.session.rollback()
        assert db.session.get(StatusMigrationLog, log_id) is not None


class TestQueries:
    def test_logs_for_entity_oldest_first(self):
        _write(new_unified_status="CREATED")
        _write(new_unified_status="IN_TRANSIT")
        _write(entity_id="SHP-2")
        logs = logs_for_entity("Shipment", "SHP-1")
        assert [log.new_unified_status for log in logs] == ["CREATED", "IN_TRANSIT"]

    def test_logs_in_range_is_half_open(self):
        log = _write()
        ts = db.session.get(StatusMigrationLog, log.id).timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        assert logs_in_range(ts, ts + timedelta(seconds=1))
        assert logs_in_range(ts - timedelta(seconds=1), ts) == []

    def test_logs_in_range_filters(self):
        _write(action="STATUS_SYNC", source="a")
        _write(action="STATUS_REPAIR", source="b")
        start = datetime.now(UTC) - timedelta(hours=1)
        assert [log.source for log in logs_in_range(start, action="STATUS_REPAIR")] == ["b"]
        assert [log.action for log in logs_in_range(start, source="a")] == ["STATUS_SYNC"]

    def test_counts(self):
        _write(action="STATUS_SYNC", source="repair")
        _write(action="STATUS_SYNC", source="repair")
        _write(action="STATUS_UPDATE", source="status-engine")
        assert count_by_action() == {"STATUS_SYNC": 2, "STATUS_UPDATE": 1}
        assert count_by_source() == {"repair": 2, "status-engine": 1}


class TestRunMarkers:
    def test_start_records_entity_counts(self, make_order, make_pr):
        make_order(status="Dispatched")
        make_pr("PR-1", "DRAFT")
        log = record_migration_start("setup", notes="dry rehearsal")
        assert log.action == "MIGRATION_START"
        assert log.entity_id == MIGRATION_SYSTEM_ID
        meta = log.meta
        assert meta["entityCounts"]["Order"] == 1
        assert meta["entityCounts"]["PR"] == 1
        assert meta["entityCounts"]["total"] == 2
        assert meta["notes"] == "dry rehearsal"

    def test_complete_records_summary(self):
        log = record_migration_complete("setup", {"entityCounts": entity_counts()})
        assert log.action == "MIGRATION_COMPLETE"
        assert log.meta["summary"]["entityCounts"]["total"] == 0
