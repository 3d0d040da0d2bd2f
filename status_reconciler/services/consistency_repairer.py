"""
Status Consistency Repairer — backfill unified status from legacy status.

For every record whose unified status is missing (and, in strict mode,
every record whose unified status disagrees with the mapping of its legacy
value) the repairer looks up the mapping table and:

  - mapped    → one guarded UPDATE keyed by id, plus one migration-log row,
                committed together
  - unmapped  → skipped with the literal legacy value in ``reason``; the
                unified field is left alone
  - DB error  → rolled back, counted, batch continues

The UPDATE repeats the selection predicate in its WHERE clause, so a record
repaired by a concurrent run (or by the application) since it was read is
left alone and reported as ``UNCHANGED``.  Re-running the repairer over
repaired data therefore writes nothing.

Usage:
    result = ConsistencyRepairer(flags).run()
    result.to_dict()   # {"repaired": 3, "skipped": 1, "errors": 0, ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from status_reconciler.models import db
from status_reconciler.models.migration_log import write_migration_log
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.entity_registry import ENTITY_SPECS, EntitySpec
from status_reconciler.services.status_mapping import MAPPING_VERSION, EntityType

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "consistency-repair"

# Detail actions
REPAIRED = "REPAIRED"
SKIPPED = "SKIPPED"
UNCHANGED = "UNCHANGED"
ERROR = "ERROR"


def unknown_legacy_reason(value) -> str:
    shown = value if value not in (None, "") else "<missing>"
    return f"Unknown legacy status: {shown}"


@dataclass
class RepairDetail:
    entity_type: EntityType
    entity_id: str
    action: str
    legacy_status: str | None = None
    previous_unified: str | None = None
    new_unified: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        out = {
            "entityType": self.entity_type.value,
            "entityId": self.entity_id,
            "action": self.action,
            "legacyStatus": self.legacy_status,
            "previousUnifiedStatus": self.previous_unified,
            "newUnifiedStatus": self.new_unified,
        }
        if self.reason:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True)
class _Candidate:
    record_id: str
    legacy: str | None
    legacy_label: str | None
    previous: str | None
    was_missing: bool
    expected: Enum | None


@dataclass
class RepairResult:
    source: str
    strict: bool = False
    dry_run: bool = False
    details: list[RepairDetail] = field(default_factory=list)

    def _count(self, action: str, entity_type: EntityType | None = None) -> int:
        return sum(
            1 for d in self.details
            if d.action == action and (entity_type is None or d.entity_type == entity_type)
        )

    @property
    def repaired(self) -> int:
        return self._count(REPAIRED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def unchanged(self) -> int:
        return self._count(UNCHANGED)

    @property
    def errors(self) -> int:
        return self._count(ERROR)

    @property
    def processed(self) -> int:
        return len(self.details)

    @property
    def skipped_details(self) -> list[RepairDetail]:
        return [d for d in self.details if d.action == SKIPPED]

    def to_dict(self) -> dict:
        by_entity = {}
        for et in EntityType:
            by_entity[et.value] = {
                "repaired": self._count(REPAIRED, et),
                "skipped": self._count(SKIPPED, et),
                "unchanged": self._count(UNCHANGED, et),
                "errors": self._count(ERROR, et),
            }
        return {
            "source": self.source,
            "strict": self.strict,
            "dryRun": self.dry_run,
            "mappingVersion": MAPPING_VERSION,
            "processed": self.processed,
            "repaired": self.repaired,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "errors": self.errors,
            "byEntity": by_entity,
            "details": [d.to_dict() for d in self.details],
        }


class ConsistencyRepairer:
    """Idempotent unified-status backfill over every workflow table."""

    def __init__(
        self,
        flags: RolloutFlags,
        *,
        source: str = DEFAULT_SOURCE,
        strict: bool = False,
        dry_run: bool = False,
        entity_types=None,
    ):
        self.flags = flags
        self.source = source
        self.strict = strict
        self.dry_run = dry_run
        self.entity_types = [EntityType(e) for e in entity_types] if entity_types else list(ENTITY_SPECS)

    # ── Candidate selection ──────────────────────────────────────────────

    def _candidates(self, spec: EntitySpec) -> list[_Candidate]:
        """Snapshot candidate rows before any commit expires them."""
        rows = spec.scan() if self.strict else spec.scan(spec.unified_missing_clause())
        out = []
        for record in rows:
            candidate = _Candidate(
                record_id=spec.record_id(record),
                legacy=spec.legacy_snapshot(record),
                legacy_label=spec.legacy_label(record),
                previous=spec.unified_value(record),
                was_missing=not spec.unified_populated(record),
                expected=spec.expected_unified(record),
            )
            if candidate.was_missing:
                out.append(candidate)
            elif candidate.expected is not None and candidate.previous != candidate.expected.value:
                out.append(candidate)
        return out

    # ── Per-record repair ────────────────────────────────────────────────

    def _repair_one(self, spec: EntitySpec, candidate: _Candidate) -> RepairDetail:
        et = spec.entity_type
        record_id = candidate.record_id
        legacy = candidate.legacy
        previous = candidate.previous
        expected = candidate.expected

        if expected is None:
            reason = unknown_legacy_reason(candidate.legacy_label)
            logger.warning("  ⚠️  %s %s skipped: %s", et.value, record_id, reason,
                           extra={"entity_type": et.value, "entity_id": record_id, "action": SKIPPED})
            return RepairDetail(et, record_id, SKIPPED, legacy, previous, None, reason)

        detail = RepairDetail(et, record_id, REPAIRED, legacy, previous, expected.value)
        if self.dry_run:
            return detail

        was_missing = candidate.was_missing
        guard = spec.unified_missing_clause() if was_missing else spec.unified_column == previous
        stmt = (
            update(spec.model)
            .where(spec.id_column == record_id, guard)
            .values({
                spec.unified_attr: expected.value,
                spec.updated_at_attr: datetime.now(UTC),
                spec.updated_by_attr: self.source,
            })
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                detail.action = UNCHANGED
                detail.reason = "Already updated by another writer"
                return detail
            write_migration_log(
                entity_type=et.value,
                entity_id=record_id,
                action="STATUS_SYNC" if was_missing else "STATUS_REPAIR",
                source=self.source,
                updated_by=self.source,
                previous_legacy_status=legacy,
                new_legacy_status=legacy,
                previous_unified_status=previous,
                new_unified_status=expected.value,
                metadata={"mappingVersion": MAPPING_VERSION, "strict": self.strict},
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("  ❌ %s %s repair failed: %s", et.value, record_id, exc,
                         extra={"entity_type": et.value, "entity_id": record_id, "action": ERROR})
            detail.action = ERROR
            detail.reason = str(exc)
            return detail

        logger.debug("  ✅ %s %s: %s → %s", et.value, record_id, previous, expected.value)
        return detail

    # ── Batch ────────────────────────────────────────────────────────────

    def run(self) -> RepairResult:
        result = RepairResult(source=self.source, strict=self.strict, dry_run=self.dry_run)
        for et in self.entity_types:
            spec = ENTITY_SPECS[et]
            candidates = self._candidates(spec)
            logger.info("[%s] %d candidate record(s)", et.value, len(candidates),
                        extra={"entity_type": et.value})
            for candidate in candidates:
                result.details.append(self._repair_one(spec, candidate))

        logger.info(
            "Repair complete: repaired=%d skipped=%d unchanged=%d errors=%d%s",
            result.repaired, result.skipped, result.unchanged, result.errors,
            " (dry run)" if self.dry_run else "",
        )
        return result
