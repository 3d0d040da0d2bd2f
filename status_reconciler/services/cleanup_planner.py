"""
Orphan Cleanup Planner — plan, back up, and (separately) execute.

Planning and execution are two commands on purpose:

  plan     Collects the five orphan sets from the cascade auditor, writes one
           JSON backup per non-empty set into
           ``<BACKUPS_DIR>/orphaned-records-YYYY-MM-DD/``, persists the plan
           as ``cleanup-plan.json`` next to them and prints delete statements
           for an operator to review.  Issues no deletes.

  execute  Reloads a persisted plan, only when the operator echoes the plan id
           back and every backup file is still on disk.  The orphan checks
           run again and only planned keys that are still orphaned are
           deleted; keys that gained a parent meanwhile are skipped.

Usage:
    plan = OrphanCleanupPlanner(flags).plan(backups_dir)
    ...
    execute_cleanup_plan(load_cleanup_plan(path), confirm=plan.plan_id)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import delete

from status_reconciler.core.exceptions import CleanupConfirmationError, ValidationError
from status_reconciler.models import db
from status_reconciler.models.directory import ProductVendor, VendorInventory
from status_reconciler.models.workflow import GoodsReceiptNote, Invoice, Shipment
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.cascade_auditor import CascadeAuditor

logger = logging.getLogger(__name__)

PLAN_FILENAME = "cleanup-plan.json"
PREVIEW_COUNT = 5


@dataclass(frozen=True)
class _BatchDef:
    check: str
    entity: str
    model: type
    backup_filename: str
    preview_fields: tuple[str, ...]

    @property
    def table(self) -> str:
        return self.model.__tablename__

    @property
    def primary_key(self) -> str:
        return self.model.__mapper__.primary_key[0].name


# Order fixes the batch order in plans and in execution.
BATCH_DEFS: tuple[_BatchDef, ...] = (
    _BatchDef("orphanedShipments", "Shipment", Shipment, "orphaned-shipments.json", ("shipmentId", "prNumber")),
    _BatchDef("orphanedGrns", "GRN", GoodsReceiptNote, "orphaned-grns.json", ("grnNumber", "poNumber")),
    _BatchDef("orphanedInvoices", "Invoice", Invoice, "orphaned-invoices.json", ("invoiceNumber", "grnId")),
    _BatchDef("orphanedProductVendors", "ProductVendor", ProductVendor,
              "orphaned-product-vendors.json", ("vendorId", "uniformId")),
    _BatchDef("orphanedVendorInventory", "VendorInventory", VendorInventory,
              "orphaned-vendor-inventory.json", ("vendorId", "uniformId")),
)

_DEFS_BY_TABLE = {d.table: d for d in BATCH_DEFS}


def _record_id(d: _BatchDef, record: dict) -> str:
    return str(record["shipmentId"] if d.primary_key == "shipment_id" else record["id"])


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def backup_dir_for(root: str, created_at: datetime) -> str:
    return os.path.join(root, f"orphaned-records-{created_at.date().isoformat()}")


@dataclass(frozen=True)
class DeleteBatch:
    table: str
    entity: str
    primary_key: str
    ids: tuple[str, ...]
    records: tuple[dict, ...] = field(repr=False)
    backup_path: str | None = None

    @property
    def count(self) -> int:
        return len(self.ids)

    def delete_statement(self) -> str:
        quoted = ", ".join(_sql_literal(i) for i in self.ids)
        return f"DELETE FROM {self.table} WHERE {self.primary_key} IN ({quoted});"

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "entity": self.entity,
            "primaryKey": self.primary_key,
            "count": self.count,
            "ids": list(self.ids),
            "backupPath": self.backup_path,
        }


@dataclass(frozen=True)
class CleanupPlan:
    plan_id: str
    created_at: datetime
    fingerprint: str
    batches: tuple[DeleteBatch, ...] = ()
    backup_dir: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.batches

    @property
    def total(self) -> int:
        return sum(b.count for b in self.batches)

    @property
    def backup_paths(self) -> list[str]:
        return [b.backup_path for b in self.batches if b.backup_path]

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "createdAt": self.created_at.isoformat(),
            "fingerprint": self.fingerprint,
            "backupDir": self.backup_dir,
            "total": self.total,
            "batches": [b.to_dict() for b in self.batches],
        }


def _fingerprint(batches) -> str:
    payload = json.dumps(
        [[b.table, sorted(b.ids)] for b in batches], separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_cleanup_plan(orphan_sets: dict[str, list[dict]], created_at: datetime,
                       backup_root: str | None = None) -> CleanupPlan:
    """
    Turn orphan record summaries (keyed by cascade check name) into a plan.

    Pure: reads nothing, writes nothing.  The plan id is derived from the
    tables and ids it would delete, so re-planning over the same orphans
    yields the same id.
    """
    backup_dir = backup_dir_for(backup_root, created_at) if backup_root else None
    batches = []
    for d in BATCH_DEFS:
        records = orphan_sets.get(d.check) or []
        if not records:
            continue
        ids = tuple(_record_id(d, r) for r in records)
        batches.append(DeleteBatch(
            table=d.table,
            entity=d.entity,
            primary_key=d.primary_key,
            ids=ids,
            records=tuple(records),
            backup_path=os.path.join(backup_dir, d.backup_filename) if backup_dir else None,
        ))
    fingerprint = _fingerprint(batches)
    return CleanupPlan(
        plan_id=fingerprint[:16],
        created_at=created_at,
        fingerprint=fingerprint,
        batches=tuple(batches),
        backup_dir=backup_dir,
    )


def render_delete_instructions(plan: CleanupPlan) -> list[str]:
    """Operator-facing lines: count, first-5 preview and the delete statement per batch."""
    if plan.is_empty:
        return ["No orphaned records found. Nothing to clean up."]
    lines = [
        "CLEANUP COMMANDS (DO NOT RUN WITHOUT REVIEW)",
        "These statements DELETE data permanently. Back up the database first.",
    ]
    for batch in plan.batches:
        d = _DEFS_BY_TABLE[batch.table]
        lines.append("")
        lines.append(f"-- DELETE ORPHANED {batch.entity.upper()} ({batch.count})")
        lines.append(f"-- Preview (first {PREVIEW_COUNT}):")
        for rec in batch.records[:PREVIEW_COUNT]:
            shown = ", ".join(f"{f}={rec.get(f)}" for f in d.preview_fields)
            lines.append(f"--   {shown}")
        lines.append(batch.delete_statement())
    lines.append("")
    lines.append(f"-- Or run: status-reconciler cleanup-execute --plan <path> --confirm {plan.plan_id}")
    return lines


# ── Persistence ──────────────────────────────────────────────────────────────

def save_cleanup_plan(plan: CleanupPlan) -> str:
    path = os.path.join(plan.backup_dir, PLAN_FILENAME)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(
            {**plan.to_dict(), "records": {b.table: list(b.records) for b in plan.batches}},
            fh, indent=2, default=str,
        )
    return path


def load_cleanup_plan(path: str) -> CleanupPlan:
    """Rebuild a plan from ``cleanup-plan.json``; a tampered id list is rejected."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    records = data.get("records", {})
    batches = tuple(
        DeleteBatch(
            table=b["table"],
            entity=b["entity"],
            primary_key=b["primaryKey"],
            ids=tuple(b["ids"]),
            records=tuple(records.get(b["table"], [])),
            backup_path=b.get("backupPath"),
        )
        for b in data.get("batches", [])
    )
    for b in batches:
        if b.table not in _DEFS_BY_TABLE:
            raise ValidationError(f"Unknown table in cleanup plan: {b.table}", details={"path": path})
    plan = CleanupPlan(
        plan_id=data["planId"],
        created_at=datetime.fromisoformat(data["createdAt"]),
        fingerprint=data["fingerprint"],
        batches=batches,
        backup_dir=data.get("backupDir"),
    )
    if _fingerprint(plan.batches) != plan.fingerprint:
        raise ValidationError("Cleanup plan contents do not match its fingerprint", details={"path": path})
    return plan


# ── Plan ─────────────────────────────────────────────────────────────────────

class OrphanCleanupPlanner:
    """Builds and backs up a cleanup plan; never deletes."""

    def __init__(self, flags: RolloutFlags):
        self.flags = flags

    def collect(self) -> dict[str, list[dict]]:
        checks = CascadeAuditor(self.flags).orphan_checks()
        return {key: list(check.findings) for key, check in checks.items()}

    def plan(self, backup_root: str, *, created_at: datetime | None = None) -> CleanupPlan:
        created_at = created_at or datetime.now(UTC)
        orphan_sets = self.collect()
        for d in BATCH_DEFS:
            logger.info("  Orphaned %-16s %d", d.entity, len(orphan_sets.get(d.check, [])))

        plan = build_cleanup_plan(orphan_sets, created_at, backup_root)
        if plan.is_empty:
            logger.info("✅ No orphaned records found. Nothing to clean up.")
            return plan

        os.makedirs(plan.backup_dir, exist_ok=True)
        for batch in plan.batches:
            with open(batch.backup_path, "w", encoding="utf-8") as fh:
                json.dump(list(batch.records), fh, indent=2, default=str)
            logger.info("Exported %d %s record(s) to %s", batch.count, batch.entity, batch.backup_path)
        plan_path = save_cleanup_plan(plan)
        logger.info("Cleanup plan %s (%d record(s)) saved to %s", plan.plan_id, plan.total, plan_path)
        return plan


# ── Execute ──────────────────────────────────────────────────────────────────


@dataclass
class CleanupOutcome:
    deleted: dict[str, int] = field(default_factory=dict)
    # planned ids that gained a parent between plan and execute
    skipped: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"deleted": dict(self.deleted), "skipped": {t: list(ids) for t, ids in self.skipped.items()}}


def _still_orphaned(flags: RolloutFlags) -> dict[str, set[str]]:
    """Table → ids the cascade auditor reports as orphans right now."""
    checks = CascadeAuditor(flags).orphan_checks()
    return {
        d.table: {_record_id(d, rec) for rec in checks[d.check].findings}
        for d in BATCH_DEFS
    }


def execute_cleanup_plan(plan: CleanupPlan, *, confirm: str | None,
                         flags: RolloutFlags | None = None) -> CleanupOutcome:
    """
    Delete the primary-key sets listed in *plan*.

    Raises ``CleanupConfirmationError`` unless *confirm* equals the plan id
    and every batch's backup file exists.  The orphan checks are re-run first
    and only planned ids that are still orphaned are deleted; the rest are
    reported as skipped.  All batches commit together.
    """
    if not confirm or confirm != plan.plan_id:
        raise CleanupConfirmationError(plan.plan_id, "confirmation token does not match plan id")
    for batch in plan.batches:
        if not batch.backup_path or not os.path.isfile(batch.backup_path):
            raise CleanupConfirmationError(plan.plan_id, f"backup missing for {batch.table}: {batch.backup_path}")

    current = _still_orphaned(flags or RolloutFlags())
    outcome = CleanupOutcome()
    try:
        for batch in plan.batches:
            orphaned = current.get(batch.table, set())
            ids = [i for i in batch.ids if i in orphaned]
            skipped = [i for i in batch.ids if i not in orphaned]
            if skipped:
                outcome.skipped[batch.table] = skipped
                logger.warning("Skipping %d %s row(s) no longer orphaned: %s",
                               len(skipped), batch.table, ", ".join(skipped),
                               extra={"entity_type": batch.entity, "action": "DELETE"})
            if not ids:
                outcome.deleted[batch.table] = 0
                continue
            model = _DEFS_BY_TABLE[batch.table].model
            pk = getattr(model, batch.primary_key)
            result = db.session.execute(
                delete(model).where(pk.in_(ids)).execution_options(synchronize_session=False)
            )
            outcome.deleted[batch.table] = result.rowcount
            logger.warning("Deleted %d/%d %s row(s)", result.rowcount, batch.count, batch.table,
                           extra={"entity_type": batch.entity, "action": "DELETE"})
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Cleanup plan %s failed; nothing deleted", plan.plan_id)
        raise
    return outcome
