"""
Rollout Readiness Evaluator — can safe-mode be switched off?

Scores six independent sections, lays out the flag-flip sequence and
returns a READY / NOT READY verdict.  Advisory only: it never writes a
record and never touches a flag.

Sections:
  A  Unified Field Integrity     aggregate unified coverage            ≥ 95
  B  Status Sync Health          unified == mapping(legacy)            ≥ 98
  C  Cascade Integrity           four parent→child edges               ≥ 90
  D  Relationship Graph Health   Order → Employee / Company / Vendor   ≥ 80
  E  Legacy Field Dependence     field pairs fully backed by unified   ≥ 80
  F  Dual-write Stability        legacy and unified populated together ≥ 95
  G  Flag-flip Sequence          five ordered steps, not scored

Verdict:
  READY only if A, B, C and F all pass and at most one of A–F fails.

Usage:
    report = ReadinessEvaluator(flags).evaluate()
    report.verdict            # "READY" | "NOT READY"
    report.blocking           # ["C", "D"]

    verdict_from_scores({"A": 96, "B": 99, "C": 92, "F": 97})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import select

from status_reconciler.models import db
from status_reconciler.models.directory import Company, Employee, Vendor
from status_reconciler.models.workflow import Order
from status_reconciler.rollout import RolloutFlags, RolloutPhase
from status_reconciler.services.cascade_auditor import CascadeAuditor
from status_reconciler.services.coverage_auditor import CoverageAuditor, count_rows, percentage
from status_reconciler.services.entity_registry import ENTITY_SPECS, EntitySpec, get_spec
from status_reconciler.services.repository import distinct_values
from status_reconciler.services.status_mapping import MAPPING_VERSION, EntityType, UnifiedPRStatus

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Constants
# ═════════════════════════════════════════════════════════════════════════════

READY = "READY"
NOT_READY = "NOT READY"

PASS = "PASS"
FAIL = "FAIL"

SECTION_NAMES = {
    "A": "Unified Field Integrity",
    "B": "Status Sync Health",
    "C": "Cascade Integrity",
    "D": "Relationship Graph Health",
    "E": "Legacy Field Dependence",
    "F": "Dual-write Stability",
    "G": "Flag-flip Sequence",
}

THRESHOLDS = {"A": 95.0, "B": 98.0, "C": 90.0, "D": 80.0, "E": 80.0, "F": 95.0}

SCORED_SECTIONS = ("A", "B", "C", "D", "E", "F")
CRITICAL_SECTIONS = ("A", "B", "C", "F")
MAX_FAILURES = 1

# Section E field-pair classes
SAFE = "SAFE"
WARNING = "WARNING"
BLOCKING = "BLOCKING"
WARNING_RATE = 90.0

_PHASE_ORDER = [
    RolloutPhase.LEGACY_ONLY,
    RolloutPhase.DUAL_WRITE,
    RolloutPhase.READ_FROM_UNIFIED,
    RolloutPhase.UNIFIED_PRIMARY,
    RolloutPhase.UNIFIED_ONLY,
]


@dataclass(frozen=True)
class FlagFlipStep:
    step: int
    action: str
    reason: str
    risk: str
    prerequisite: str
    gate_sections: tuple[str, ...]


FLAG_FLIP_SEQUENCE: tuple[FlagFlipStep, ...] = (
    FlagFlipStep(1, "Set DUAL_WRITE_ENABLED=true",
                 "Ensure all new writes populate both legacy and unified fields",
                 "LOW", "Unified coverage ≥ 95%", ("A",)),
    FlagFlipStep(2, "Set READ_FROM_UNIFIED=true",
                 "Application reads from unified fields",
                 "MEDIUM", "Status sync health ≥ 98%", ("B",)),
    FlagFlipStep(3, "Set SAFE_MODE=false",
                 "Unified fields become primary; legacy guards removed",
                 "MEDIUM", "Sections A, B, C and F pass; previous steps complete", CRITICAL_SECTIONS),
    FlagFlipStep(4, "Set DUAL_WRITE_ENABLED=false",
                 "Stop writing to legacy fields",
                 "HIGH", "Stable operation for 7+ days; no legacy field dependence", ("E",)),
    FlagFlipStep(5, "Remove legacy fields from schema",
                 "Schema simplification",
                 "HIGH", "All consumers migrated; backup verified", ("D", "E")),
)


# ═════════════════════════════════════════════════════════════════════════════
# Verdict (pure)
# ═════════════════════════════════════════════════════════════════════════════

def failing_sections(statuses: dict[str, str]) -> list[str]:
    return [key for key in SCORED_SECTIONS if statuses.get(key, PASS) == FAIL]


def decide_verdict(statuses: dict[str, str]) -> tuple[str, list[str]]:
    """
    ``(verdict, blocking)`` for a mapping of section key → PASS/FAIL.

    Sections absent from *statuses* count as PASS.  ``blocking`` lists every
    failing section, in section order, when the verdict is NOT READY and is
    empty otherwise.
    """
    failed = failing_sections(statuses)
    critical_ok = all(statuses.get(key, PASS) == PASS for key in CRITICAL_SECTIONS)
    if critical_ok and len(failed) <= MAX_FAILURES:
        return READY, []
    return NOT_READY, failed


def status_for(key: str, score: float) -> str:
    return PASS if score >= THRESHOLDS[key] else FAIL


def verdict_from_scores(scores: dict[str, float]) -> tuple[str, list[str]]:
    """Evaluate a fixed snapshot of section scores against ``THRESHOLDS``."""
    return decide_verdict({key: status_for(key, score) for key, score in scores.items()})


# ═════════════════════════════════════════════════════════════════════════════
# Results
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class SectionResult:
    key: str
    score: float | None
    details: list[dict] = field(default_factory=list)

    @property
    def name(self) -> str:
        return SECTION_NAMES[self.key]

    @property
    def threshold(self) -> float | None:
        return THRESHOLDS.get(self.key)

    @property
    def status(self) -> str:
        if self.threshold is None:
            return PASS
        return status_for(self.key, self.score)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "score": self.score,
            "threshold": self.threshold,
            "details": self.details,
        }


@dataclass
class ReadinessReport:
    flags: RolloutFlags
    sections: dict[str, SectionResult] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def statuses(self) -> dict[str, str]:
        return {key: s.status for key, s in self.sections.items() if key in SCORED_SECTIONS}

    @property
    def verdict(self) -> str:
        return decide_verdict(self.statuses)[0]

    @property
    def blocking(self) -> list[str]:
        return decide_verdict(self.statuses)[1]

    @property
    def warnings(self) -> list[str]:
        return failing_sections(self.statuses) if self.verdict == READY else []

    def summary(self) -> dict:
        scored = [self.sections[k] for k in SCORED_SECTIONS if k in self.sections]
        total = round(sum(s.score for s in scored) / len(scored), 2) if scored else 0.0
        return {
            "passed": sum(1 for s in scored if s.status == PASS),
            "failed": sum(1 for s in scored if s.status == FAIL),
            "totalScore": total,
        }

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "mappingVersion": MAPPING_VERSION,
            "flags": self.flags.to_dict(),
            "phase": self.flags.phase.value,
            "sections": {key: s.to_dict() for key, s in self.sections.items()},
            "finalVerdict": self.verdict,
            "blockingSections": self.blocking,
            "warnings": self.warnings,
            "summary": self.summary(),
        }


@dataclass
class _EntityStats:
    """One pass over an entity's rows, shared by sections B, E and F."""

    entity_type: EntityType
    total: int = 0
    synced: int = 0
    legacy_populated: int = 0
    both_populated: int = 0
    either_populated: int = 0


# ═════════════════════════════════════════════════════════════════════════════
# Evaluator
# ═════════════════════════════════════════════════════════════════════════════

class ReadinessEvaluator:
    """Read-only scorecard over the current dataset and flags."""

    def __init__(self, flags: RolloutFlags):
        self.flags = flags

    # ── Shared scan ──────────────────────────────────────────────────────

    @staticmethod
    def entity_stats(spec: EntitySpec) -> _EntityStats:
        stats = _EntityStats(spec.entity_type)
        for record in spec.scan():
            stats.total += 1
            legacy = spec.legacy_populated(record)
            unified = spec.unified_populated(record)

            expected = spec.expected_unified(record)
            # no mapping for the legacy value means nothing to disagree with
            if expected is None or spec.unified_value(record) == expected.value:
                stats.synced += 1

            if legacy:
                stats.legacy_populated += 1
            if legacy and unified:
                stats.both_populated += 1
            if legacy or unified:
                stats.either_populated += 1
        return stats

    # ── Sections ─────────────────────────────────────────────────────────

    def section_a(self) -> SectionResult:
        coverage = CoverageAuditor(self.flags).run()
        return SectionResult("A", coverage.aggregate_coverage, [r.to_dict() for r in coverage.rows])

    def section_b(self, stats: list[_EntityStats]) -> SectionResult:
        details = [{
            "entity": s.entity_type.value,
            "total": s.total,
            "synced": s.synced,
            "outOfSync": s.total - s.synced,
            "syncRate": percentage(s.synced, s.total),
        } for s in stats]
        score = percentage(sum(s.synced for s in stats), sum(s.total for s in stats))
        return SectionResult("B", score, details)

    def section_c(self) -> SectionResult:
        auditor = CascadeAuditor(self.flags)
        pr_spec = get_spec(EntityType.PR)
        linked_claims = count_rows(pr_spec, Order.unified_pr_status == UnifiedPRStatus.LINKED_TO_PO.value)
        shipment_claims = count_rows(pr_spec, auditor.shipment_claim_clause())

        edges = [
            ("PR→PO", linked_claims, len(auditor.find_prs_linked_without_po())),
            ("PO→GRN", count_rows(get_spec(EntityType.GRN)), len(auditor.find_orphaned_grns())),
            ("GRN→Invoice", count_rows(get_spec(EntityType.INVOICE)), len(auditor.find_orphaned_invoices())),
            (
                "Shipment→PR",
                count_rows(get_spec(EntityType.SHIPMENT)) + shipment_claims,
                len(auditor.find_orphaned_shipments()) + len(auditor.find_prs_shipped_without_shipment()),
            ),
        ]
        valid_total = broken_total = 0
        details = []
        for edge, checked, broken in edges:
            # an edge with nothing to check still counts once, as valid
            valid = max(checked - broken, 0) if checked else 1
            valid_total += valid
            broken_total += broken
            details.append({"edge": edge, "checked": checked, "valid": valid, "broken": broken})
        return SectionResult("C", percentage(valid_total, valid_total + broken_total), details)

    def section_d(self) -> SectionResult:
        targets = {
            "Employee": ("employee_id", distinct_values(Employee, "id")),
            "Company": ("company_id", distinct_values(Company, "id")),
            "Vendor": ("vendor_id", distinct_values(Vendor, "id")),
        }
        checked = {name: 0 for name in targets}
        broken = {name: 0 for name in targets}
        for order in db.session.execute(select(Order).order_by(Order.id)).scalars():
            for name, (attr, known) in targets.items():
                ref = getattr(order, attr)
                if not ref:
                    continue
                checked[name] += 1
                if ref not in known:
                    broken[name] += 1

        details = [{
            "relationship": f"Order→{name}",
            "checked": checked[name],
            "broken": broken[name],
            "healthy": checked[name] - broken[name],
        } for name in targets]
        total_checked = sum(checked.values())
        healthy = total_checked - sum(broken.values())
        return SectionResult("D", percentage(healthy, total_checked), details)

    def section_e(self, stats: list[_EntityStats]) -> SectionResult:
        details = []
        safe = 0
        for s in stats:
            spec = ENTITY_SPECS[s.entity_type]
            rate = percentage(s.both_populated, s.legacy_populated)
            if rate == 100.0:
                level = SAFE
                safe += 1
            elif rate >= WARNING_RATE:
                level = WARNING
            else:
                level = BLOCKING
            details.append({
                "entity": s.entity_type.value,
                "legacyField": "/".join((spec.legacy_attr,) + spec.extra_legacy_attrs),
                "unifiedField": spec.unified_attr,
                "legacyPopulated": s.legacy_populated,
                "bothPopulated": s.both_populated,
                "rate": rate,
                "level": level,
            })
        return SectionResult("E", percentage(safe, len(stats)), details)

    def section_f(self, stats: list[_EntityStats]) -> SectionResult:
        details = [{
            "entity": s.entity_type.value,
            "eitherPopulated": s.either_populated,
            "bothPopulated": s.both_populated,
            "stability": percentage(s.both_populated, s.either_populated),
        } for s in stats]
        score = percentage(sum(s.both_populated for s in stats), sum(s.either_populated for s in stats))
        return SectionResult("F", score, details)

    def section_g(self, sections: dict[str, SectionResult]) -> SectionResult:
        reached = _PHASE_ORDER.index(self.flags.phase)
        details = []
        previous_done = True
        for step in FLAG_FLIP_SEQUENCE:
            # steps 1-4 map onto phases; dropping legacy columns is never inferred from flags
            completed = step.step <= 4 and reached >= step.step
            gate_ok = previous_done and all(sections[k].status == PASS for k in step.gate_sections)
            details.append({
                "step": step.step,
                "action": step.action,
                "reason": step.reason,
                "risk": step.risk,
                "prerequisite": step.prerequisite,
                "gateSections": list(step.gate_sections),
                "gateSatisfied": gate_ok,
                "completed": completed,
            })
            previous_done = completed
        return SectionResult("G", None, details)

    # ── Run ──────────────────────────────────────────────────────────────

    def evaluate(self) -> ReadinessReport:
        logger.info("Rollout readiness evaluation (phase %s)", self.flags.phase.value)
        report = ReadinessReport(flags=self.flags)

        stats = [self.entity_stats(spec) for spec in ENTITY_SPECS.values()]
        report.sections["A"] = self.section_a()
        report.sections["B"] = self.section_b(stats)
        report.sections["C"] = self.section_c()
        report.sections["D"] = self.section_d()
        report.sections["E"] = self.section_e(stats)
        report.sections["F"] = self.section_f(stats)
        report.sections["G"] = self.section_g(report.sections)

        for key in SCORED_SECTIONS:
            s = report.sections[key]
            marker = "✅" if s.status == PASS else "❌"
            logger.info("  [%s] %s %-26s %6.2f%% (threshold %.0f%%)",
                        key, marker, s.name, s.score, s.threshold)

        if report.verdict == READY:
            logger.info("FINAL VERDICT: %s%s", READY,
                        f" (warnings: {', '.join(report.warnings)})" if report.warnings else "")
        else:
            logger.warning("FINAL VERDICT: %s (blocking: %s)", NOT_READY, ", ".join(report.blocking))
        logger.info("Read-only analysis complete; no data was modified")
        return report
