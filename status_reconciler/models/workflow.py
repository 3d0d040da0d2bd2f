"""
Status Reconciler
Workflow domain models.

Models:
    - Order: employee uniform order; rows with ``pr_number`` set are
      Purchase Requisitions (PR) and carry their own status pair.
    - PurchaseOrder: vendor-facing PO grouping PRs via ``client_po_number``.
    - Shipment: physical dispatch for a PR (``pr_number``).
    - GoodsReceiptNote: receipt against a PO (``po_number``).
    - Invoice: vendor invoice raised against a GRN (``grn_id``).

Each entity keeps its free-form legacy status next to the unified status
column and its ``*_updated_at`` / ``*_updated_by`` companions.
"""

from status_reconciler.models import db
from status_reconciler.models.base import TimestampedModel, _iso, _uuid


class Order(TimestampedModel):
    """
    Order collection.  A row is a Purchase Requisition when ``pr_number``
    is populated; PR lifecycle lives in the ``pr_status`` pair while the
    plain order lifecycle lives in the ``status`` pair.
    """

    __tablename__ = "orders"
    __table_args__ = (
        db.Index("idx_orders_pr_number", "pr_number"),
        db.Index("idx_orders_po_number", "po_number"),
        db.Index("idx_orders_company", "company_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_number = db.Column(db.String(50), nullable=True)

    # Relationship references (denormalised, unenforced)
    employee_id = db.Column(db.String(36), nullable=True)
    company_id = db.Column(db.String(36), nullable=True)
    vendor_id = db.Column(db.String(36), nullable=True)

    # Order lifecycle
    status = db.Column(db.String(50), nullable=True, comment="Legacy order status")
    unified_status = db.Column(db.String(40), nullable=True)
    unified_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_status_updated_by = db.Column(db.String(100), nullable=True)

    # Purchase Requisition lifecycle
    pr_number = db.Column(db.String(50), nullable=True)
    pr_status = db.Column(db.String(50), nullable=True, comment="Legacy PR status")
    unified_pr_status = db.Column(db.String(40), nullable=True)
    unified_pr_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_pr_status_updated_by = db.Column(db.String(100), nullable=True)

    # PR → PO link and fulfilment signals
    po_number = db.Column(db.String(50), nullable=True)
    dispatch_status = db.Column(db.String(30), nullable=True, comment="AWAITING_FULFILMENT | SHIPPED")
    delivery_status = db.Column(
        db.String(30), nullable=True,
        comment="NOT_DELIVERED | PARTIALLY_DELIVERED | DELIVERED",
    )

    @property
    def is_pr(self) -> bool:
        return bool(self.pr_number)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "employee_id": self.employee_id,
            "company_id": self.company_id,
            "vendor_id": self.vendor_id,
            "status": self.status,
            "unified_status": self.unified_status,
            "unified_status_updated_at": _iso(self.unified_status_updated_at),
            "unified_status_updated_by": self.unified_status_updated_by,
            "pr_number": self.pr_number,
            "pr_status": self.pr_status,
            "unified_pr_status": self.unified_pr_status,
            "unified_pr_status_updated_at": _iso(self.unified_pr_status_updated_at),
            "unified_pr_status_updated_by": self.unified_pr_status_updated_by,
            "po_number": self.po_number,
            "dispatch_status": self.dispatch_status,
            "delivery_status": self.delivery_status,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        kind = f"PR {self.pr_number}" if self.is_pr else "Order"
        return f"<{kind} {self.id}: {self.pr_status if self.is_pr else self.status}>"


class PurchaseOrder(TimestampedModel):
    """Vendor purchase order; PRs point at it through ``client_po_number``."""

    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("idx_po_client_number", "client_po_number"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_po_number = db.Column(db.String(50), nullable=True)
    company_id = db.Column(db.String(36), nullable=True)
    vendor_id = db.Column(db.String(36), nullable=True)

    po_status = db.Column(db.String(50), nullable=True, comment="Legacy PO status")
    unified_po_status = db.Column(db.String(40), nullable=True)
    unified_po_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_po_status_updated_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_po_number": self.client_po_number,
            "company_id": self.company_id,
            "vendor_id": self.vendor_id,
            "po_status": self.po_status,
            "unified_po_status": self.unified_po_status,
            "unified_po_status_updated_at": _iso(self.unified_po_status_updated_at),
            "unified_po_status_updated_by": self.unified_po_status_updated_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<PurchaseOrder {self.client_po_number}: {self.po_status}>"


class Shipment(TimestampedModel):
    """Dispatch record for a PR; identified by its external ``shipment_id``."""

    __tablename__ = "shipments"
    __table_args__ = (
        db.Index("idx_shipments_pr_number", "pr_number"),
    )

    shipment_id = db.Column(db.String(50), primary_key=True, default=_uuid)
    pr_number = db.Column(db.String(50), nullable=True)
    vendor_id = db.Column(db.String(36), nullable=True)
    courier_status = db.Column(db.String(50), nullable=True)

    shipment_status = db.Column(db.String(50), nullable=True, comment="Legacy shipment status")
    unified_shipment_status = db.Column(db.String(40), nullable=True)
    unified_shipment_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_shipment_status_updated_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "shipment_id": self.shipment_id,
            "pr_number": self.pr_number,
            "vendor_id": self.vendor_id,
            "courier_status": self.courier_status,
            "shipment_status": self.shipment_status,
            "unified_shipment_status": self.unified_shipment_status,
            "unified_shipment_status_updated_at": _iso(self.unified_shipment_status_updated_at),
            "unified_shipment_status_updated_by": self.unified_shipment_status_updated_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Shipment {self.shipment_id}: {self.shipment_status}>"


class GoodsReceiptNote(TimestampedModel):
    """
    Goods receipt against a PO.  Carries two legacy fields: ``grn_status``
    (approval workflow) and the older ``status``.
    """

    __tablename__ = "grns"
    __table_args__ = (
        db.Index("idx_grns_po_number", "po_number"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    grn_number = db.Column(db.String(50), nullable=True)
    po_number = db.Column(db.String(50), nullable=True)
    vendor_id = db.Column(db.String(36), nullable=True)

    status = db.Column(db.String(50), nullable=True, comment="Older legacy GRN status")
    grn_status = db.Column(db.String(50), nullable=True, comment="Legacy approval status")
    unified_grn_status = db.Column(db.String(40), nullable=True)
    unified_grn_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_grn_status_updated_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "grn_number": self.grn_number,
            "po_number": self.po_number,
            "vendor_id": self.vendor_id,
            "status": self.status,
            "grn_status": self.grn_status,
            "unified_grn_status": self.unified_grn_status,
            "unified_grn_status_updated_at": _iso(self.unified_grn_status_updated_at),
            "unified_grn_status_updated_by": self.unified_grn_status_updated_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<GRN {self.grn_number}: {self.grn_status or self.status}>"


class Invoice(TimestampedModel):
    """Vendor invoice; ``grn_id`` references ``grns.id``."""

    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("idx_invoices_grn_id", "grn_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    invoice_number = db.Column(db.String(50), nullable=True)
    grn_id = db.Column(db.String(36), nullable=True)
    grn_number = db.Column(db.String(50), nullable=True)
    vendor_id = db.Column(db.String(36), nullable=True)

    invoice_status = db.Column(db.String(50), nullable=True, comment="Legacy invoice status")
    unified_invoice_status = db.Column(db.String(40), nullable=True)
    unified_invoice_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unified_invoice_status_updated_by = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "grn_id": self.grn_id,
            "grn_number": self.grn_number,
            "vendor_id": self.vendor_id,
            "invoice_status": self.invoice_status,
            "unified_invoice_status": self.unified_invoice_status,
            "unified_invoice_status_updated_at": _iso(self.unified_invoice_status_updated_at),
            "unified_invoice_status_updated_by": self.unified_invoice_status_updated_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Invoice {self.invoice_number}: {self.invoice_status}>"
