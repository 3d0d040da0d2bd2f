"""
Status Reconciler
Migration log model.

Models:
    - StatusMigrationLog: immutable, append-only trail of every status
      mutation performed by the reconciler.

Rows are written through ``write_migration_log`` and never updated or
deleted; ORM-level update/delete of a log row raises.
"""

import json
from datetime import UTC, datetime

from sqlalchemy import event

from status_reconciler.core.exceptions import ValidationError
from status_reconciler.models import db

# ── Constants ────────────────────────────────────────────────────────────────

MIGRATION_LOG_ENTITY_TYPES = {"Order", "PR", "PO", "Shipment", "GRN", "Invoice"}

MIGRATION_LOG_ACTIONS = {
    "STATUS_UPDATE",
    "STATUS_SYNC",
    "STATUS_REPAIR",
    "MIGRATION_START",
    "MIGRATION_COMPLETE",
}

# entity_id used for run-level MIGRATION_START / MIGRATION_COMPLETE rows
MIGRATION_SYSTEM_ID = "MIGRATION_SYSTEM"


class StatusMigrationLog(db.Model):
    """
    One row per status mutation.

    Carries before/after values for both the legacy and unified field so the
    readiness checks and operators can reconstruct every change.
    """

    __tablename__ = "status_migration_logs"
    __table_args__ = (
        db.Index("idx_sml_entity", "entity_type", "entity_id"),
        db.Index("idx_sml_entity_ts", "entity_type", "timestamp"),
        db.Index("idx_sml_action_ts", "action", "timestamp"),
        db.Index("idx_sml_source", "source"),
        db.Index("idx_sml_ts", "timestamp"),
        db.Index("idx_sml_updated_by_ts", "updated_by", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(20), nullable=False, comment="Order | PR | PO | Shipment | GRN | Invoice")
    entity_id = db.Column(db.String(50), nullable=False)
    action = db.Column(db.String(30), nullable=False)

    previous_legacy_status = db.Column(db.String(120), nullable=True)
    new_legacy_status = db.Column(db.String(120), nullable=True)
    previous_unified_status = db.Column(db.String(40), nullable=True)
    new_unified_status = db.Column(db.String(40), nullable=True)

    source = db.Column(db.String(100), nullable=False, comment="Job or code path that wrote the change")
    updated_by = db.Column(db.String(100), nullable=False, default="system")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    metadata_json = db.Column("metadata", db.Text, default="{}")

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def meta(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "previousLegacyStatus": self.previous_legacy_status,
            "newLegacyStatus": self.new_legacy_status,
            "previousUnifiedStatus": self.previous_unified_status,
            "newUnifiedStatus": self.new_unified_status,
            "source": self.source,
            "updatedBy": self.updated_by,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.meta,
        }

    def __repr__(self):
        return f"<StatusMigrationLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(StatusMigrationLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValidationError(
        "Migration log entries are immutable",
        details={"id": target.id, "operation": "update"},
    )


@event.listens_for(StatusMigrationLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ValidationError(
        "Migration log entries cannot be deleted",
        details={"id": target.id, "operation": "delete"},
    )


# ── Convenience writer ───────────────────────────────────────────────────────

def write_migration_log(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    source: str,
    updated_by: str = "system",
    previous_legacy_status: str | None = None,
    new_legacy_status: str | None = None,
    previous_unified_status: str | None = None,
    new_unified_status: str | None = None,
    metadata: dict | None = None,
) -> StatusMigrationLog:
    """
    Append a single migration-log row.  Uses ``flush`` so callers keep
    transaction control and can commit it together with the status write.

    Returns the (flushed) StatusMigrationLog instance.
    """
    if entity_type not in MIGRATION_LOG_ENTITY_TYPES:
        raise ValidationError(f"Unknown entity type: {entity_type}", details={"entity_type": entity_type})
    if action not in MIGRATION_LOG_ACTIONS:
        raise ValidationError(f"Unknown migration log action: {action}", details={"action": action})

    log = StatusMigrationLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        previous_legacy_status=previous_legacy_status,
        new_legacy_status=new_legacy_status,
        previous_unified_status=previous_unified_status,
        new_unified_status=new_unified_status,
        source=source,
        updated_by=updated_by,
        metadata_json=json.dumps(metadata or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
