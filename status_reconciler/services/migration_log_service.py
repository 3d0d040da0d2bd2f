"""
Migration Log Store — read side and run bookkeeping.

Writes go through ``models.migration_log.write_migration_log``; this module
adds the point queries used by readiness checks and the reporting API, plus
the MIGRATION_START / MIGRATION_COMPLETE run markers.  There is no update
or delete path.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select

from status_reconciler.models import db
from status_reconciler.models.migration_log import (
    MIGRATION_SYSTEM_ID,
    StatusMigrationLog,
    write_migration_log,
)
from status_reconciler.services.entity_registry import ENTITY_SPECS
from status_reconciler.services.coverage_auditor import count_rows
from status_reconciler.services.status_mapping import MAPPING_VERSION, EntityType

logger = logging.getLogger(__name__)

MIGRATION_PHASE = "unified-status-fields"

# Run markers are system-level; Order is used as their entity type placeholder.
_SYSTEM_ENTITY_TYPE = EntityType.ORDER.value


# ── Queries ──────────────────────────────────────────────────────────────────

def logs_for_entity(entity_type: str, entity_id: str) -> list[StatusMigrationLog]:
    """All log rows for one record, oldest first."""
    stmt = (
        select(StatusMigrationLog)
        .where(
            StatusMigrationLog.entity_type == entity_type,
            StatusMigrationLog.entity_id == str(entity_id),
        )
        .order_by(StatusMigrationLog.timestamp, StatusMigrationLog.id)
    )
    return list(db.session.execute(stmt).scalars())


def logs_in_range(
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    entity_type: str | None = None,
    action: str | None = None,
    source: str | None = None,
) -> list[StatusMigrationLog]:
    """Log rows with ``start <= timestamp < end``, newest first."""
    stmt = select(StatusMigrationLog)
    if start is not None:
        stmt = stmt.where(StatusMigrationLog.timestamp >= start)
    if end is not None:
        stmt = stmt.where(StatusMigrationLog.timestamp < end)
    if entity_type:
        stmt = stmt.where(StatusMigrationLog.entity_type == entity_type)
    if action:
        stmt = stmt.where(StatusMigrationLog.action == action)
    if source:
        stmt = stmt.where(StatusMigrationLog.source == source)
    stmt = stmt.order_by(StatusMigrationLog.timestamp.desc(), StatusMigrationLog.id.desc())
    return list(db.session.execute(stmt).scalars())


def count_by_action() -> dict[str, int]:
    rows = db.session.execute(
        select(StatusMigrationLog.action, func.count())
        .group_by(StatusMigrationLog.action)
    ).all()
    return {action: n for action, n in rows}


def count_by_source() -> dict[str, int]:
    rows = db.session.execute(
        select(StatusMigrationLog.source, func.count())
        .group_by(StatusMigrationLog.source)
    ).all()
    return {source: n for source, n in rows}


# ── Run markers ──────────────────────────────────────────────────────────────

def entity_counts() -> dict[str, int]:
    counts = {et.value: count_rows(spec) for et, spec in ENTITY_SPECS.items()}
    counts["total"] = sum(counts.values())
    return counts


def record_migration_start(source: str, *, notes: str | None = None) -> StatusMigrationLog:
    """Append a MIGRATION_START marker carrying the entity counts at start."""
    counts = entity_counts()
    log = write_migration_log(
        entity_type=_SYSTEM_ENTITY_TYPE,
        entity_id=MIGRATION_SYSTEM_ID,
        action="MIGRATION_START",
        source=source,
        metadata={
            "migrationVersion": MAPPING_VERSION,
            "migrationPhase": MIGRATION_PHASE,
            "entityCounts": counts,
            "notes": notes or "Unified status field migration initialized.",
        },
    )
    db.session.commit()
    logger.info("MIGRATION_START logged by %s (%d records across %d entity types)",
                source, counts["total"], len(ENTITY_SPECS))
    return log


def record_migration_complete(source: str, summary: dict | None = None) -> StatusMigrationLog:
    """Append a MIGRATION_COMPLETE marker with a caller-provided summary."""
    log = write_migration_log(
        entity_type=_SYSTEM_ENTITY_TYPE,
        entity_id=MIGRATION_SYSTEM_ID,
        action="MIGRATION_COMPLETE",
        source=source,
        metadata={
            "migrationVersion": MAPPING_VERSION,
            "migrationPhase": MIGRATION_PHASE,
            "summary": summary or {},
        },
    )
    db.session.commit()
    logger.info("MIGRATION_COMPLETE logged by %s", source)
    return log
