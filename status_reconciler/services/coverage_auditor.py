"""
Field Coverage Auditor — how much of each table has a unified status.

Read-only.  For every workflow entity type counts the rows, the rows whose
unified status is a non-blank string, and the resulting percentage.  The
aggregate figure is the first readiness gate (Section A, ≥ 95 %).

Usage:
    report = CoverageAuditor(flags).run()
    report.aggregate_coverage  # -> 97.5
    report.to_dict()           # JSON-ready
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import func, select

from status_reconciler.models import db
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.entity_registry import ENTITY_SPECS, EntitySpec
from status_reconciler.services.status_mapping import MAPPING_VERSION, EntityType

logger = logging.getLogger(__name__)

COVERAGE_GATE_PCT = 95.0


def count_rows(spec: EntitySpec, *criteria) -> int:
    """Row count for one entity type, honouring its scope filter."""
    stmt = select(func.count()).select_from(spec.model)
    if spec.scope is not None:
        stmt = stmt.where(spec.scope())
    if criteria:
        stmt = stmt.where(*criteria)
    return db.session.execute(stmt).scalar_one()


def percentage(part: int, whole: int) -> float:
    """``part / whole`` as a percentage rounded to 2 places; 100 when *whole* is 0."""
    if whole == 0:
        return 100.0
    return round(part / whole * 100, 2)


@dataclass
class CoverageRow:
    entity_type: EntityType
    collection: str
    total: int
    with_unified: int

    @property
    def missing(self) -> int:
        return self.total - self.with_unified

    @property
    def coverage(self) -> float:
        return percentage(self.with_unified, self.total)

    def to_dict(self) -> dict:
        return {
            "entity": self.entity_type.value,
            "collection": self.collection,
            "total": self.total,
            "withUnified": self.with_unified,
            "missing": self.missing,
            "coverage": self.coverage,
        }


@dataclass
class CoverageReport:
    rows: list[CoverageRow] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total(self) -> int:
        return sum(r.total for r in self.rows)

    @property
    def with_unified(self) -> int:
        return sum(r.with_unified for r in self.rows)

    @property
    def aggregate_coverage(self) -> float:
        return percentage(self.with_unified, self.total)

    @property
    def passes_gate(self) -> bool:
        return self.aggregate_coverage >= COVERAGE_GATE_PCT

    def row(self, entity_type: EntityType | str) -> CoverageRow:
        et = EntityType(entity_type)
        return next(r for r in self.rows if r.entity_type == et)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "mappingVersion": MAPPING_VERSION,
            "collections": [r.to_dict() for r in self.rows],
            "aggregate": {
                "total": self.total,
                "withUnified": self.with_unified,
                "coverage": self.aggregate_coverage,
            },
            "threshold": COVERAGE_GATE_PCT,
            "passesGate": self.passes_gate,
        }


class CoverageAuditor:
    """Counts populated unified-status fields per entity type."""

    def __init__(self, flags: RolloutFlags, entity_types=None):
        self.flags = flags
        self.entity_types = [EntityType(e) for e in entity_types] if entity_types else list(ENTITY_SPECS)

    def audit_entity(self, entity_type: EntityType) -> CoverageRow:
        spec = ENTITY_SPECS[entity_type]
        col = spec.unified_column
        total = count_rows(spec)
        populated = count_rows(spec, col.isnot(None), func.trim(col) != "")
        return CoverageRow(entity_type, spec.collection, total, populated)

    def run(self) -> CoverageReport:
        report = CoverageReport()
        for et in self.entity_types:
            row = self.audit_entity(et)
            report.rows.append(row)
            marker = "✅" if row.coverage >= COVERAGE_GATE_PCT else "❌"
            logger.info(
                "  %s %-9s %6d/%-6d %6.2f%% unified populated",
                marker, et.value, row.with_unified, row.total, row.coverage,
                extra={"entity_type": et.value},
            )
        logger.info("Aggregate unified coverage: %.2f%% (gate %.0f%%)",
                    report.aggregate_coverage, COVERAGE_GATE_PCT)
        return report
