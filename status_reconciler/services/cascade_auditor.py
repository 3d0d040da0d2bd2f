"""
Relationship & Cascade Integrity Auditor — read-only cross-table checks.

Checks (each a ``CheckResult``):
  1. Orphaned children        orphanedShipments, orphanedGrns, orphanedInvoices
  2. Claimed-but-missing      prsLinkedWithoutPo, prsShippedWithoutShipment
  3. Aggregate mismatch       poStatusMismatches
  4. Dangling secondary links orphanedProductVendors, orphanedVendorInventory

Every check is built on ``repository.find_orphans`` except the aggregate
check, which groups linked PRs per PO.  Detail lists are capped at
``PREVIEW_LIMIT`` entries in the JSON form; full record lists stay on the
``CheckResult`` for the cleanup planner.  Nothing here writes.

Usage:
    report = CascadeAuditor(flags).run()
    report.check("orphanedShipments").count
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import and_, or_, select

from status_reconciler.models import db
from status_reconciler.models.directory import ProductVendor, Uniform, Vendor, VendorInventory
from status_reconciler.models.workflow import GoodsReceiptNote, Invoice, Order, PurchaseOrder, Shipment
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.entity_registry import get_spec
from status_reconciler.services.repository import find_orphans
from status_reconciler.services.status_mapping import EntityType, UnifiedPOStatus, UnifiedPRStatus

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 30

HEALTHY = "HEALTHY"
ISSUES_FOUND = "ISSUES_FOUND"

# Aggregate predicates over a PO's linked PRs
PR_DELIVERED_DELIVERY_STATUS = "DELIVERED"
PR_DELIVERED_LEGACY_STATUS = "FULLY_DELIVERED"
PR_SHIPPED_DISPATCH_STATUS = "SHIPPED"
PO_COMPLETED_LEGACY_STATUS = "COMPLETED"
PO_COMPLETED_UNIFIED = {UnifiedPOStatus.FULLY_DELIVERED.value, UnifiedPOStatus.CLOSED.value}
PO_NOT_STARTED_LEGACY_STATUS = "CREATED"


def _iso(value):
    return value.isoformat() if value else None


@dataclass
class CheckResult:
    key: str
    title: str
    description: str
    findings: list[dict] = field(default_factory=list)
    records: list = field(default_factory=list, repr=False)

    @property
    def count(self) -> int:
        return len(self.findings)

    @property
    def status(self) -> str:
        return HEALTHY if not self.findings else ISSUES_FOUND

    def to_dict(self, preview_limit: int = PREVIEW_LIMIT) -> dict:
        more = max(0, self.count - preview_limit)
        out = {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "count": self.count,
            "details": self.findings[:preview_limit],
            "moreCount": more,
        }
        if more:
            out["more"] = f"... and {more} more"
        return out


@dataclass
class CascadeReport:
    checks: dict[str, CheckResult] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def check(self, key: str) -> CheckResult:
        return self.checks[key]

    @property
    def total_issues(self) -> int:
        return sum(c.count for c in self.checks.values())

    @property
    def healthy(self) -> bool:
        return self.total_issues == 0

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "checks": {key: c.to_dict() for key, c in self.checks.items()},
            "summary": {
                "totalIssues": self.total_issues,
                "checksWithIssues": sorted(k for k, c in self.checks.items() if c.findings),
                "healthy": self.healthy,
            },
        }


# ── Record summaries ─────────────────────────────────────────────────────────

def _shipment_summary(s: Shipment) -> dict:
    return {
        "shipmentId": s.shipment_id,
        "prNumber": s.pr_number,
        "vendorId": s.vendor_id,
        "shipmentStatus": s.shipment_status,
        "createdAt": _iso(s.created_at),
    }


def _grn_summary(g: GoodsReceiptNote) -> dict:
    return {
        "id": g.id,
        "grnNumber": g.grn_number,
        "poNumber": g.po_number,
        "vendorId": g.vendor_id,
        "status": g.status,
        "grnStatus": g.grn_status,
        "createdAt": _iso(g.created_at),
    }


def _invoice_summary(i: Invoice) -> dict:
    return {
        "id": i.id,
        "invoiceNumber": i.invoice_number,
        "grnId": i.grn_id,
        "grnNumber": i.grn_number,
        "vendorId": i.vendor_id,
        "invoiceStatus": i.invoice_status,
        "createdAt": _iso(i.created_at),
    }


def _pr_summary(pr: Order) -> dict:
    return {
        "id": pr.id,
        "prNumber": pr.pr_number,
        "poNumber": pr.po_number,
        "prStatus": pr.pr_status,
        "unifiedPrStatus": pr.unified_pr_status,
        "dispatchStatus": pr.dispatch_status,
        "deliveryStatus": pr.delivery_status,
    }


class CascadeAuditor:
    """Runs every cascade/relationship check; never mutates a record."""

    def __init__(self, flags: RolloutFlags):
        self.flags = flags

    # ── 1. Orphaned children ─────────────────────────────────────────────

    def find_orphaned_shipments(self) -> list[Shipment]:
        """Shipments whose pr_number matches no PR row."""
        return find_orphans(Order, Shipment, "pr_number", "pr_number")

    def find_orphaned_grns(self) -> list[GoodsReceiptNote]:
        """GRNs whose po_number matches no PO client_po_number."""
        return find_orphans(PurchaseOrder, GoodsReceiptNote, "client_po_number", "po_number")

    def find_orphaned_invoices(self) -> list[Invoice]:
        """Invoices whose grn_id matches no GRN id."""
        return find_orphans(GoodsReceiptNote, Invoice, "id", "grn_id")

    # ── 2. Claimed-but-missing ───────────────────────────────────────────

    def find_prs_linked_without_po(self) -> list[Order]:
        """PRs whose unified status says LINKED_TO_PO but no matching PO exists."""
        claims = and_(
            get_spec(EntityType.PR).scope(),
            Order.unified_pr_status == UnifiedPRStatus.LINKED_TO_PO.value,
        )
        return find_orphans(PurchaseOrder, Order, "client_po_number", "po_number", child_filter=claims)

    @staticmethod
    def shipment_claim_clause():
        return and_(
            get_spec(EntityType.PR).scope(),
            or_(
                Order.dispatch_status == PR_SHIPPED_DISPATCH_STATUS,
                Order.unified_pr_status == UnifiedPRStatus.IN_SHIPMENT.value,
                Order.delivery_status.in_(("PARTIALLY_DELIVERED", "DELIVERED")),
            ),
        )

    def find_prs_shipped_without_shipment(self) -> list[Order]:
        """PRs claiming shipment or delivery with no shipment row for their pr_number."""
        return find_orphans(Shipment, Order, "pr_number", "pr_number",
                            child_filter=self.shipment_claim_clause())

    # ── 3. Status-vs-aggregate ───────────────────────────────────────────

    def find_po_status_mismatches(self) -> list[dict]:
        """
        POs whose status disagrees with their linked PRs.

        Only two aggregate predicates are defined:
          - all linked PRs delivered  → PO must be COMPLETED-equivalent
          - any linked PR shipped     → PO must have left CREATED
        """
        prs_by_po: dict[str, list[Order]] = defaultdict(list)
        pr_rows = db.session.execute(
            select(Order).where(get_spec(EntityType.PR).scope(), Order.po_number.isnot(None))
        ).scalars()
        for pr in pr_rows:
            prs_by_po[pr.po_number].append(pr)

        mismatches = []
        for po in get_spec(EntityType.PO).scan(PurchaseOrder.client_po_number.isnot(None)):
            linked = prs_by_po.get(po.client_po_number, [])
            if not linked:
                continue
            all_delivered = all(
                pr.delivery_status == PR_DELIVERED_DELIVERY_STATUS
                or pr.pr_status == PR_DELIVERED_LEGACY_STATUS
                for pr in linked
            )
            any_shipped = any(pr.dispatch_status == PR_SHIPPED_DISPATCH_STATUS for pr in linked)
            po_completed = (
                po.po_status == PO_COMPLETED_LEGACY_STATUS
                or po.unified_po_status in PO_COMPLETED_UNIFIED
            )

            issues = []
            if all_delivered and not po_completed:
                issues.append(f"All {len(linked)} linked PR(s) delivered but PO status is {po.po_status}")
            if any_shipped and po.po_status == PO_NOT_STARTED_LEGACY_STATUS:
                issues.append("Linked PR shipped but PO status is still CREATED")
            if issues:
                mismatches.append({
                    "po": po,
                    "summary": {
                        "id": po.id,
                        "poNumber": po.client_po_number,
                        "poStatus": po.po_status,
                        "unifiedPoStatus": po.unified_po_status,
                        "linkedPrCount": len(linked),
                        "linkedPrNumbers": [pr.pr_number for pr in linked],
                        "allDelivered": all_delivered,
                        "anyShipped": any_shipped,
                        "issues": issues,
                    },
                })
        return mismatches

    # ── 4. Dangling secondary links ──────────────────────────────────────

    def _dangling_links(self, model) -> list[tuple]:
        """(row, issues) for join rows whose vendor, or set uniform, does not resolve."""
        bad_vendor = {r.id: r for r in find_orphans(Vendor, model, "id", "vendor_id")}
        bad_uniform = {r.id: r for r in find_orphans(Uniform, model, "id", "uniform_id", allow_missing=True)}
        out = []
        for row_id in sorted(set(bad_vendor) | set(bad_uniform)):
            row = bad_vendor.get(row_id) or bad_uniform.get(row_id)
            issues = []
            if row_id in bad_vendor:
                issues.append(f"Vendor not found: {row.vendor_id}")
            if row_id in bad_uniform:
                issues.append(f"Uniform not found: {row.uniform_id}")
            out.append((row, issues))
        return out

    def find_orphaned_product_vendors(self) -> list[tuple]:
        return self._dangling_links(ProductVendor)

    def find_orphaned_vendor_inventory(self) -> list[tuple]:
        return self._dangling_links(VendorInventory)

    # ── Run ──────────────────────────────────────────────────────────────

    def orphan_checks(self) -> dict[str, CheckResult]:
        """The checks whose findings are deletable orphan rows."""
        shipments = self.find_orphaned_shipments()
        grns = self.find_orphaned_grns()
        invoices = self.find_orphaned_invoices()
        product_vendors = self.find_orphaned_product_vendors()
        inventory = self.find_orphaned_vendor_inventory()

        def _link_summary(row, issues):
            return {"id": row.id, "vendorId": row.vendor_id, "uniformId": row.uniform_id, "issues": issues}

        return {
            "orphanedShipments": CheckResult(
                "orphanedShipments", "Orphaned Shipments",
                "Shipments whose prNumber matches no PR",
                [_shipment_summary(s) for s in shipments], shipments,
            ),
            "orphanedGrns": CheckResult(
                "orphanedGrns", "Orphaned GRNs",
                "GRNs whose poNumber matches no purchase order",
                [_grn_summary(g) for g in grns], grns,
            ),
            "orphanedInvoices": CheckResult(
                "orphanedInvoices", "Orphaned Invoices",
                "Invoices whose grnId matches no GRN",
                [_invoice_summary(i) for i in invoices], invoices,
            ),
            "orphanedProductVendors": CheckResult(
                "orphanedProductVendors", "Orphaned ProductVendor links",
                "ProductVendor rows referencing a missing vendor or uniform",
                [_link_summary(r, issues) for r, issues in product_vendors],
                [r for r, _ in product_vendors],
            ),
            "orphanedVendorInventory": CheckResult(
                "orphanedVendorInventory", "Orphaned VendorInventory rows",
                "VendorInventory rows referencing a missing vendor or uniform",
                [_link_summary(r, issues) for r, issues in inventory],
                [r for r, _ in inventory],
            ),
        }

    def run(self) -> CascadeReport:
        report = CascadeReport()
        report.checks.update(self.orphan_checks())

        linked = self.find_prs_linked_without_po()
        report.checks["prsLinkedWithoutPo"] = CheckResult(
            "prsLinkedWithoutPo", "PRs linked to a missing PO",
            "PRs with unified status LINKED_TO_PO and no matching purchase order",
            [_pr_summary(pr) for pr in linked], linked,
        )
        shipped = self.find_prs_shipped_without_shipment()
        report.checks["prsShippedWithoutShipment"] = CheckResult(
            "prsShippedWithoutShipment", "PRs shipped without a shipment",
            "PRs marked shipped, in shipment or delivered with no shipment record",
            [_pr_summary(pr) for pr in shipped], shipped,
        )
        mismatches = self.find_po_status_mismatches()
        report.checks["poStatusMismatches"] = CheckResult(
            "poStatusMismatches", "PO status mismatches",
            "Purchase orders whose status disagrees with their linked PRs",
            [m["summary"] for m in mismatches], [m["po"] for m in mismatches],
        )

        for check in report.checks.values():
            if check.findings:
                logger.warning("  ❌ %-28s %d issue(s)", check.title, check.count)
            else:
                logger.info("  ✅ %-28s healthy", check.title)
        logger.info("Cascade audit complete: %d issue(s) across %d check(s)",
                    report.total_issues, len(report.checks))
        return report
