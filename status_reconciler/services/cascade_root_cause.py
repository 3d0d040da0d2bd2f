"""
Cascade root-cause analysis for PRs whose fulfilment state does not add up.

A PR is "problematic" when either:
  - it claims delivery or shipment (legacy FULLY_DELIVERED, delivery
    DELIVERED, dispatch SHIPPED) yet its unified status is set to something
    other than FULLY_DELIVERED, or
  - it claims to be shipped (dispatch set, or unified IN_SHIPMENT) but no
    shipment row carries its pr_number.

Each problematic PR gets exactly one root cause, a severity, the conversion
type inferred from ``unified_pr_status_updated_by`` and a recommendation.
Read-only.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import and_, or_

from status_reconciler.models import db
from status_reconciler.models.workflow import Order, Shipment
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.entity_registry import get_spec
from status_reconciler.services.repository import distinct_values
from status_reconciler.services.status_mapping import EntityType, UnifiedPRStatus, UnifiedShipmentStatus

logger = logging.getLogger(__name__)


class RootCause(str, Enum):
    MISSING_SHIPMENT_RECORD = "MISSING_SHIPMENT_RECORD"
    SHIPMENT_NOT_DELIVERED = "SHIPMENT_NOT_DELIVERED"
    MANUAL_STATUS_OVERRIDE = "MANUAL_STATUS_OVERRIDE"
    STATUS_MISMATCH = "STATUS_MISMATCH"
    ORPHANED_PR = "ORPHANED_PR"
    DATA_MIGRATION_ARTIFACT = "DATA_MIGRATION_ARTIFACT"
    PARTIAL_DELIVERY = "PARTIAL_DELIVERY"
    UNKNOWN = "UNKNOWN"


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


RECOMMENDATIONS = {
    RootCause.MISSING_SHIPMENT_RECORD: "Create shipment record retroactively OR mark PR as manually fulfilled",
    RootCause.SHIPMENT_NOT_DELIVERED: "Update shipment status to DELIVERED to complete cascade",
    RootCause.MANUAL_STATUS_OVERRIDE: "Document as manual fulfillment, no action needed if intentional",
    RootCause.STATUS_MISMATCH: "Run status consistency repair to align unified_pr_status",
    RootCause.ORPHANED_PR: "Archive or delete if test data; investigate if production data",
    RootCause.DATA_MIGRATION_ARTIFACT: "Document as legacy data; consider cleanup migration",
    RootCause.PARTIAL_DELIVERY: "Verify all items delivered; update status if complete",
    RootCause.UNKNOWN: "Manual investigation required",
}

_DELIVERED_SHIPMENT_VALUES = {UnifiedShipmentStatus.DELIVERED.value, "Delivered"}


def infer_conversion_type(updated_by: str | None) -> str:
    """Who last stamped the unified PR status: migration, auto, manual or unknown."""
    text = (updated_by or "").lower()
    if "migration" in text or "script" in text:
        return "migration"
    if "dual-write" in text or "cascade" in text:
        return "auto"
    if "admin" in text or "manual" in text:
        return "manual"
    return "unknown"


def classify(pr: Order, shipment: Shipment | None, conversion_type: str) -> tuple[RootCause, Severity]:
    if shipment is None:
        if conversion_type == "migration":
            return RootCause.DATA_MIGRATION_ARTIFACT, Severity.MINOR
        if pr.delivery_status == "DELIVERED" or pr.pr_status == "FULLY_DELIVERED":
            return RootCause.MANUAL_STATUS_OVERRIDE, Severity.MINOR
        if pr.delivery_status == "PARTIALLY_DELIVERED":
            return RootCause.PARTIAL_DELIVERY, Severity.MAJOR
        if pr.dispatch_status == "SHIPPED":
            return RootCause.MISSING_SHIPMENT_RECORD, Severity.MAJOR
        return RootCause.ORPHANED_PR, Severity.MINOR

    if shipment.shipment_status not in _DELIVERED_SHIPMENT_VALUES:
        return RootCause.SHIPMENT_NOT_DELIVERED, Severity.MAJOR
    if pr.unified_pr_status != UnifiedPRStatus.FULLY_DELIVERED.value:
        return RootCause.STATUS_MISMATCH, Severity.CRITICAL
    return RootCause.UNKNOWN, Severity.MINOR


@dataclass
class RootCauseFinding:
    pr_id: str
    pr_number: str
    root_cause: RootCause
    severity: Severity
    conversion_type: str
    shipment_id: str | None
    evidence: dict

    @property
    def recommendation(self) -> str:
        return RECOMMENDATIONS[self.root_cause]

    def to_dict(self) -> dict:
        return {
            "prId": self.pr_id,
            "prNumber": self.pr_number,
            "rootCause": self.root_cause.value,
            "severity": self.severity.value,
            "conversionType": self.conversion_type,
            "shipmentId": self.shipment_id,
            "recommendation": self.recommendation,
            "evidence": self.evidence,
        }


@dataclass
class RootCauseReport:
    findings: list[RootCauseFinding] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def by_root_cause(self) -> dict[str, int]:
        return dict(Counter(f.root_cause.value for f in self.findings))

    def by_severity(self) -> dict[str, int]:
        return dict(Counter(f.severity.value for f in self.findings))

    def by_conversion_type(self) -> dict[str, int]:
        return dict(Counter(f.conversion_type for f in self.findings))

    def to_dict(self) -> dict:
        grouped: dict[str, list[dict]] = {}
        for f in self.findings:
            grouped.setdefault(f.root_cause.value, []).append(f.to_dict())
        return {
            "timestamp": self.timestamp.isoformat(),
            "totalProblematic": len(self.findings),
            "byRootCause": self.by_root_cause(),
            "bySeverity": self.by_severity(),
            "byConversionType": self.by_conversion_type(),
            "recommendations": {
                cause: RECOMMENDATIONS[RootCause(cause)] for cause in grouped
            },
            "findings": grouped,
        }


class RootCauseAnalyzer:
    """Explains why PR fulfilment state disagrees with the shipment table."""

    def __init__(self, flags: RolloutFlags):
        self.flags = flags

    def problematic_prs(self) -> list[Order]:
        spec = get_spec(EntityType.PR)
        claims_fulfilment = and_(
            or_(
                Order.pr_status == "FULLY_DELIVERED",
                Order.delivery_status == "DELIVERED",
                Order.dispatch_status == "SHIPPED",
            ),
            Order.unified_pr_status.isnot(None),
            Order.unified_pr_status != UnifiedPRStatus.FULLY_DELIVERED.value,
        )
        found = {pr.id: pr for pr in spec.scan(claims_fulfilment)}

        shipped_prs = distinct_values(Shipment, "pr_number")
        claims_shipment = or_(
            and_(Order.dispatch_status.isnot(None), Order.dispatch_status != ""),
            Order.unified_pr_status == UnifiedPRStatus.IN_SHIPMENT.value,
        )
        for pr in spec.scan(claims_shipment):
            if pr.pr_number not in shipped_prs:
                found.setdefault(pr.id, pr)
        return [found[k] for k in sorted(found)]

    def analyze(self, pr: Order, shipment: Shipment | None) -> RootCauseFinding:
        conversion = infer_conversion_type(pr.unified_pr_status_updated_by)
        cause, severity = classify(pr, shipment, conversion)
        return RootCauseFinding(
            pr_id=pr.id,
            pr_number=pr.pr_number,
            root_cause=cause,
            severity=severity,
            conversion_type=conversion,
            shipment_id=shipment.shipment_id if shipment else None,
            evidence={
                "prStatus": pr.pr_status,
                "unifiedPrStatus": pr.unified_pr_status,
                "dispatchStatus": pr.dispatch_status,
                "deliveryStatus": pr.delivery_status,
                "unifiedPrStatusUpdatedBy": pr.unified_pr_status_updated_by,
                "shipmentStatus": shipment.shipment_status if shipment else None,
            },
        )

    def run(self) -> RootCauseReport:
        prs = self.problematic_prs()
        numbers = {pr.pr_number for pr in prs}
        shipments: dict[str, Shipment] = {}
        if numbers:
            stmt = get_spec(EntityType.SHIPMENT).select(Shipment.pr_number.in_(numbers))
            for s in db.session.execute(stmt).scalars():
                shipments.setdefault(s.pr_number, s)

        report = RootCauseReport()
        for pr in prs:
            finding = self.analyze(pr, shipments.get(pr.pr_number))
            report.findings.append(finding)
            logger.info(
                "  PR %s: %s (%s, %s)", pr.pr_number, finding.root_cause.value,
                finding.severity.value, finding.conversion_type,
                extra={"entity_type": EntityType.PR.value, "entity_id": pr.id},
            )
        logger.info("Root-cause analysis: %d problematic PR(s) %s",
                    len(report.findings), report.by_severity())
        return report
