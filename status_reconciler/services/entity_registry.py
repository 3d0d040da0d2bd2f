"""
Entity registry — one description per workflow entity type.

Every reconciler component (coverage, repair, readiness, status engine)
walks the same ``ENTITY_SPECS`` so the choice of table, scope filter,
legacy column and unified column is made in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import and_, func, or_, select

from status_reconciler.models import db
from status_reconciler.models.workflow import (
    GoodsReceiptNote,
    Invoice,
    Order,
    PurchaseOrder,
    Shipment,
)
from status_reconciler.services.status_mapping import (
    EntityType,
    map_grn_to_unified,
    map_legacy_to_unified,
)


def is_populated(value) -> bool:
    """A status field counts as populated when it is a non-blank string."""
    return isinstance(value, str) and bool(value.strip())


@dataclass(frozen=True)
class EntitySpec:
    """How one entity type is stored and how its statuses are read."""

    entity_type: EntityType
    model: type
    id_attr: str
    legacy_attr: str
    unified_attr: str
    scope: Callable | None = None
    extra_legacy_attrs: tuple[str, ...] = ()
    summary_attrs: tuple[str, ...] = field(default_factory=tuple)

    # ── Columns ──────────────────────────────────────────────────────────

    @property
    def collection(self) -> str:
        return self.model.__tablename__

    @property
    def id_column(self):
        return getattr(self.model, self.id_attr)

    @property
    def unified_column(self):
        return getattr(self.model, self.unified_attr)

    @property
    def updated_at_attr(self) -> str:
        return f"{self.unified_attr}_updated_at"

    @property
    def updated_by_attr(self) -> str:
        return f"{self.unified_attr}_updated_by"

    def unified_missing_clause(self):
        col = self.unified_column
        return or_(col.is_(None), func.trim(col) == "")

    # ── Reads ────────────────────────────────────────────────────────────

    def select(self, *criteria):
        stmt = select(self.model)
        if self.scope is not None:
            stmt = stmt.where(self.scope())
        if criteria:
            stmt = stmt.where(*criteria)
        return stmt.order_by(self.id_column)

    def scan(self, *criteria) -> list:
        """Sequential full read of the entity's rows."""
        return list(db.session.execute(self.select(*criteria)).scalars())

    def record_id(self, record) -> str:
        return getattr(record, self.id_attr)

    def legacy_value(self, record) -> str | None:
        """Primary legacy value; GRN falls back from grn_status to status."""
        value = getattr(record, self.legacy_attr)
        if is_populated(value):
            return value
        for attr in self.extra_legacy_attrs:
            other = getattr(record, attr)
            if is_populated(other):
                return other
        return value

    def legacy_snapshot(self, record) -> str | None:
        """Legacy value(s) as logged; GRN records both columns."""
        if not self.extra_legacy_attrs:
            return getattr(record, self.legacy_attr)
        parts = [getattr(record, self.legacy_attr)] + [getattr(record, a) for a in self.extra_legacy_attrs]
        if not any(is_populated(p) for p in parts):
            return None
        return "/".join(p or "" for p in parts)

    def legacy_label(self, record) -> str | None:
        """Legacy value for operator messages; GRN names each column, e.g. ``grn_status=None, status=WEIRD``."""
        if not self.extra_legacy_attrs:
            return getattr(record, self.legacy_attr)
        attrs = (self.legacy_attr,) + self.extra_legacy_attrs
        return ", ".join(f"{a}={getattr(record, a)}" for a in attrs)

    def legacy_populated(self, record) -> bool:
        return is_populated(self.legacy_value(record))

    def unified_value(self, record) -> str | None:
        return getattr(record, self.unified_attr)

    def unified_populated(self, record) -> bool:
        return is_populated(self.unified_value(record))

    def expected_unified(self, record):
        """Unified enum member implied by the current legacy value(s), or ``None``."""
        if self.entity_type == EntityType.GRN:
            return map_grn_to_unified(record.grn_status, record.status)
        return map_legacy_to_unified(self.entity_type, getattr(record, self.legacy_attr))

    def summary(self, record) -> dict:
        out = {"id": self.record_id(record)}
        for attr in self.summary_attrs:
            out[attr] = getattr(record, attr)
        return out


def _order_scope():
    return or_(Order.pr_number.is_(None), Order.pr_number == "")


def _pr_scope():
    return and_(Order.pr_number.isnot(None), Order.pr_number != "")


ENTITY_SPECS: dict[EntityType, EntitySpec] = {
    EntityType.ORDER: EntitySpec(
        entity_type=EntityType.ORDER,
        model=Order,
        id_attr="id",
        legacy_attr="status",
        unified_attr="unified_status",
        scope=_order_scope,
        summary_attrs=("order_number", "status", "unified_status"),
    ),
    EntityType.PR: EntitySpec(
        entity_type=EntityType.PR,
        model=Order,
        id_attr="id",
        legacy_attr="pr_status",
        unified_attr="unified_pr_status",
        scope=_pr_scope,
        summary_attrs=("pr_number", "pr_status", "unified_pr_status"),
    ),
    EntityType.PO: EntitySpec(
        entity_type=EntityType.PO,
        model=PurchaseOrder,
        id_attr="id",
        legacy_attr="po_status",
        unified_attr="unified_po_status",
        summary_attrs=("client_po_number", "po_status", "unified_po_status"),
    ),
    EntityType.SHIPMENT: EntitySpec(
        entity_type=EntityType.SHIPMENT,
        model=Shipment,
        id_attr="shipment_id",
        legacy_attr="shipment_status",
        unified_attr="unified_shipment_status",
        summary_attrs=("pr_number", "shipment_status", "unified_shipment_status"),
    ),
    EntityType.GRN: EntitySpec(
        entity_type=EntityType.GRN,
        model=GoodsReceiptNote,
        id_attr="id",
        legacy_attr="grn_status",
        unified_attr="unified_grn_status",
        extra_legacy_attrs=("status",),
        summary_attrs=("grn_number", "po_number", "status", "grn_status", "unified_grn_status"),
    ),
    EntityType.INVOICE: EntitySpec(
        entity_type=EntityType.INVOICE,
        model=Invoice,
        id_attr="id",
        legacy_attr="invoice_status",
        unified_attr="unified_invoice_status",
        summary_attrs=("invoice_number", "grn_id", "invoice_status", "unified_invoice_status"),
    ),
}


def get_spec(entity_type: EntityType | str) -> EntitySpec:
    return ENTITY_SPECS[EntityType(entity_type)]


def expected_unified_for(entity_type: EntityType | str, record):
    """Unified status implied by *record*'s legacy value(s), or ``None`` when unmapped."""
    return get_spec(entity_type).expected_unified(record)
