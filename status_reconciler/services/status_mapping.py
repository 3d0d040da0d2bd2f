"""
Status Mapping Tables — legacy → unified vocabulary.

One closed enum per entity type and one static lookup table per entity.
Lookups are many-to-one and never default: a legacy value missing from its
table maps to ``None`` and callers must treat that as "cannot infer".

The tables and enums are versioned together through ``MAPPING_VERSION``;
bump it whenever either side changes.

Usage:
    from status_reconciler.services.status_mapping import (
        EntityType, map_legacy_to_unified,
    )
    map_legacy_to_unified(EntityType.ORDER, "Awaiting fulfilment")
    # -> UnifiedOrderStatus.IN_FULFILMENT
    map_legacy_to_unified(EntityType.PR, "SOMETHING_ELSE")
    # -> None
"""

from __future__ import annotations

from enum import Enum

MAPPING_VERSION = "1.0.0"


# ═════════════════════════════════════════════════════════════════════════════
# Entity types & unified vocabularies
# ═════════════════════════════════════════════════════════════════════════════

class EntityType(str, Enum):
    ORDER = "Order"
    PR = "PR"
    PO = "PO"
    SHIPMENT = "Shipment"
    GRN = "GRN"
    INVOICE = "Invoice"


class UnifiedOrderStatus(str, Enum):
    CREATED = "CREATED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    IN_FULFILMENT = "IN_FULFILMENT"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class UnifiedPRStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_SITE_ADMIN_APPROVAL = "PENDING_SITE_ADMIN_APPROVAL"
    SITE_ADMIN_APPROVED = "SITE_ADMIN_APPROVED"
    PENDING_COMPANY_ADMIN_APPROVAL = "PENDING_COMPANY_ADMIN_APPROVAL"
    COMPANY_ADMIN_APPROVED = "COMPANY_ADMIN_APPROVED"
    REJECTED = "REJECTED"
    LINKED_TO_PO = "LINKED_TO_PO"
    IN_SHIPMENT = "IN_SHIPMENT"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    FULLY_DELIVERED = "FULLY_DELIVERED"
    CLOSED = "CLOSED"


class UnifiedPOStatus(str, Enum):
    CREATED = "CREATED"
    SENT_TO_VENDOR = "SENT_TO_VENDOR"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    IN_FULFILMENT = "IN_FULFILMENT"
    PARTIALLY_SHIPPED = "PARTIALLY_SHIPPED"
    FULLY_SHIPPED = "FULLY_SHIPPED"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    FULLY_DELIVERED = "FULLY_DELIVERED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class UnifiedShipmentStatus(str, Enum):
    CREATED = "CREATED"
    MANIFESTED = "MANIFESTED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    RETURNED = "RETURNED"
    LOST = "LOST"


class UnifiedGRNStatus(str, Enum):
    DRAFT = "DRAFT"
    RAISED = "RAISED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    INVOICED = "INVOICED"
    CLOSED = "CLOSED"


class UnifiedInvoiceStatus(str, Enum):
    RAISED = "RAISED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PAID = "PAID"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"


UNIFIED_ENUMS: dict[EntityType, type[Enum]] = {
    EntityType.ORDER: UnifiedOrderStatus,
    EntityType.PR: UnifiedPRStatus,
    EntityType.PO: UnifiedPOStatus,
    EntityType.SHIPMENT: UnifiedShipmentStatus,
    EntityType.GRN: UnifiedGRNStatus,
    EntityType.INVOICE: UnifiedInvoiceStatus,
}


# ═════════════════════════════════════════════════════════════════════════════
# Legacy → unified tables
# ═════════════════════════════════════════════════════════════════════════════

ORDER_STATUS_MAP: dict[str, UnifiedOrderStatus] = {
    "Awaiting approval": UnifiedOrderStatus.PENDING_APPROVAL,
    "Awaiting fulfilment": UnifiedOrderStatus.IN_FULFILMENT,
    "Dispatched": UnifiedOrderStatus.DISPATCHED,
    "Delivered": UnifiedOrderStatus.DELIVERED,
}

PR_STATUS_MAP: dict[str, UnifiedPRStatus] = {
    "DRAFT": UnifiedPRStatus.DRAFT,
    "SUBMITTED": UnifiedPRStatus.PENDING_SITE_ADMIN_APPROVAL,
    "PENDING_SITE_ADMIN_APPROVAL": UnifiedPRStatus.PENDING_SITE_ADMIN_APPROVAL,
    "SITE_ADMIN_APPROVED": UnifiedPRStatus.SITE_ADMIN_APPROVED,
    "PENDING_COMPANY_ADMIN_APPROVAL": UnifiedPRStatus.PENDING_COMPANY_ADMIN_APPROVAL,
    "COMPANY_ADMIN_APPROVED": UnifiedPRStatus.COMPANY_ADMIN_APPROVED,
    "REJECTED_BY_SITE_ADMIN": UnifiedPRStatus.REJECTED,
    "REJECTED_BY_COMPANY_ADMIN": UnifiedPRStatus.REJECTED,
    "PO_CREATED": UnifiedPRStatus.LINKED_TO_PO,
    "FULLY_DELIVERED": UnifiedPRStatus.FULLY_DELIVERED,
}

PO_STATUS_MAP: dict[str, UnifiedPOStatus] = {
    "CREATED": UnifiedPOStatus.CREATED,
    "SENT_TO_VENDOR": UnifiedPOStatus.SENT_TO_VENDOR,
    "ACKNOWLEDGED": UnifiedPOStatus.ACKNOWLEDGED,
    "IN_FULFILMENT": UnifiedPOStatus.IN_FULFILMENT,
    "COMPLETED": UnifiedPOStatus.FULLY_DELIVERED,
    "CANCELLED": UnifiedPOStatus.CANCELLED,
}

SHIPMENT_STATUS_MAP: dict[str, UnifiedShipmentStatus] = {
    "CREATED": UnifiedShipmentStatus.CREATED,
    "IN_TRANSIT": UnifiedShipmentStatus.IN_TRANSIT,
    "DELIVERED": UnifiedShipmentStatus.DELIVERED,
    "FAILED": UnifiedShipmentStatus.FAILED,
}

# grn_status values that decide the unified status on their own
GRN_APPROVAL_STATUS_MAP: dict[str, UnifiedGRNStatus] = {
    "APPROVED": UnifiedGRNStatus.APPROVED,
    "RAISED": UnifiedGRNStatus.RAISED,
}

GRN_STATUS_MAP: dict[str, UnifiedGRNStatus] = {
    "CREATED": UnifiedGRNStatus.RAISED,
    "ACKNOWLEDGED": UnifiedGRNStatus.APPROVED,
    "RECEIVED": UnifiedGRNStatus.APPROVED,
    "INVOICED": UnifiedGRNStatus.INVOICED,
    "CLOSED": UnifiedGRNStatus.CLOSED,
}

INVOICE_STATUS_MAP: dict[str, UnifiedInvoiceStatus] = {
    "RAISED": UnifiedInvoiceStatus.RAISED,
    "APPROVED": UnifiedInvoiceStatus.APPROVED,
}

LEGACY_TO_UNIFIED: dict[EntityType, dict[str, Enum]] = {
    EntityType.ORDER: ORDER_STATUS_MAP,
    EntityType.PR: PR_STATUS_MAP,
    EntityType.PO: PO_STATUS_MAP,
    EntityType.SHIPMENT: SHIPMENT_STATUS_MAP,
    EntityType.GRN: GRN_STATUS_MAP,
    EntityType.INVOICE: INVOICE_STATUS_MAP,
}


# ═════════════════════════════════════════════════════════════════════════════
# Unified → legacy tables (dual-write path)
# ═════════════════════════════════════════════════════════════════════════════

UNIFIED_TO_LEGACY: dict[EntityType, dict[str, str]] = {
    EntityType.ORDER: {
        "CREATED": "Awaiting approval",
        "PENDING_APPROVAL": "Awaiting approval",
        "APPROVED": "Awaiting fulfilment",
        "IN_FULFILMENT": "Awaiting fulfilment",
        "DISPATCHED": "Dispatched",
        "DELIVERED": "Delivered",
        "CANCELLED": "Awaiting approval",
    },
    EntityType.PR: {
        "DRAFT": "DRAFT",
        "PENDING_SITE_ADMIN_APPROVAL": "PENDING_SITE_ADMIN_APPROVAL",
        "SITE_ADMIN_APPROVED": "SITE_ADMIN_APPROVED",
        "PENDING_COMPANY_ADMIN_APPROVAL": "PENDING_COMPANY_ADMIN_APPROVAL",
        "COMPANY_ADMIN_APPROVED": "COMPANY_ADMIN_APPROVED",
        "REJECTED": "REJECTED_BY_COMPANY_ADMIN",
        "LINKED_TO_PO": "PO_CREATED",
        "IN_SHIPMENT": "PO_CREATED",
        "PARTIALLY_DELIVERED": "PO_CREATED",
        "FULLY_DELIVERED": "FULLY_DELIVERED",
        "CLOSED": "FULLY_DELIVERED",
    },
    EntityType.PO: {
        "CREATED": "CREATED",
        "SENT_TO_VENDOR": "SENT_TO_VENDOR",
        "ACKNOWLEDGED": "ACKNOWLEDGED",
        "IN_FULFILMENT": "IN_FULFILMENT",
        "PARTIALLY_SHIPPED": "IN_FULFILMENT",
        "FULLY_SHIPPED": "IN_FULFILMENT",
        "PARTIALLY_DELIVERED": "IN_FULFILMENT",
        "FULLY_DELIVERED": "COMPLETED",
        "CLOSED": "COMPLETED",
        "CANCELLED": "CANCELLED",
    },
    EntityType.SHIPMENT: {
        "CREATED": "CREATED",
        "MANIFESTED": "CREATED",
        "PICKED_UP": "IN_TRANSIT",
        "IN_TRANSIT": "IN_TRANSIT",
        "OUT_FOR_DELIVERY": "IN_TRANSIT",
        "DELIVERED": "DELIVERED",
        "FAILED": "FAILED",
        "RETURNED": "FAILED",
        "LOST": "FAILED",
    },
    # grn_status side; the older `status` column uses GRN_UNIFIED_TO_STATUS
    EntityType.GRN: {
        "DRAFT": "RAISED",
        "RAISED": "RAISED",
        "PENDING_APPROVAL": "RAISED",
        "APPROVED": "APPROVED",
        "INVOICED": "APPROVED",
        "CLOSED": "APPROVED",
    },
    EntityType.INVOICE: {
        "RAISED": "RAISED",
        "PENDING_APPROVAL": "RAISED",
        "APPROVED": "APPROVED",
        "PAID": "APPROVED",
        "DISPUTED": "RAISED",
        "CANCELLED": "RAISED",
    },
}

GRN_UNIFIED_TO_STATUS: dict[str, str] = {
    "DRAFT": "CREATED",
    "RAISED": "CREATED",
    "PENDING_APPROVAL": "CREATED",
    "APPROVED": "ACKNOWLEDGED",
    "INVOICED": "INVOICED",
    "CLOSED": "CLOSED",
}


# ═════════════════════════════════════════════════════════════════════════════
# Transition rules (forward moves only; [] marks a terminal state)
# ═════════════════════════════════════════════════════════════════════════════

# Keys are listed in workflow order; a target earlier in the list is a backward move.
ALLOWED_TRANSITIONS: dict[EntityType, dict[str, list[str]]] = {
    EntityType.ORDER: {
        "CREATED": ["PENDING_APPROVAL", "CANCELLED"],
        "PENDING_APPROVAL": ["APPROVED", "CANCELLED"],
        "APPROVED": ["IN_FULFILMENT", "CANCELLED"],
        "IN_FULFILMENT": ["DISPATCHED", "CANCELLED"],
        "DISPATCHED": ["DELIVERED"],
        "DELIVERED": [],
        "CANCELLED": [],
    },
    EntityType.PR: {
        "DRAFT": ["PENDING_SITE_ADMIN_APPROVAL"],
        "PENDING_SITE_ADMIN_APPROVAL": ["SITE_ADMIN_APPROVED", "REJECTED"],
        "SITE_ADMIN_APPROVED": ["PENDING_COMPANY_ADMIN_APPROVAL"],
        "PENDING_COMPANY_ADMIN_APPROVAL": ["COMPANY_ADMIN_APPROVED", "REJECTED"],
        "COMPANY_ADMIN_APPROVED": ["LINKED_TO_PO"],
        "REJECTED": [],
        "LINKED_TO_PO": ["IN_SHIPMENT"],
        "IN_SHIPMENT": ["PARTIALLY_DELIVERED", "FULLY_DELIVERED"],
        "PARTIALLY_DELIVERED": ["FULLY_DELIVERED"],
        "FULLY_DELIVERED": ["CLOSED"],
        "CLOSED": [],
    },
    EntityType.PO: {
        "CREATED": ["SENT_TO_VENDOR", "CANCELLED"],
        "SENT_TO_VENDOR": ["ACKNOWLEDGED", "CANCELLED"],
        "ACKNOWLEDGED": ["IN_FULFILMENT", "CANCELLED"],
        "IN_FULFILMENT": ["PARTIALLY_SHIPPED", "FULLY_SHIPPED", "CANCELLED"],
        "PARTIALLY_SHIPPED": ["FULLY_SHIPPED", "PARTIALLY_DELIVERED"],
        "FULLY_SHIPPED": ["PARTIALLY_DELIVERED", "FULLY_DELIVERED"],
        "PARTIALLY_DELIVERED": ["FULLY_DELIVERED"],
        "FULLY_DELIVERED": ["CLOSED"],
        "CLOSED": [],
        "CANCELLED": [],
    },
    EntityType.SHIPMENT: {
        "CREATED": ["MANIFESTED", "PICKED_UP", "FAILED"],
        "MANIFESTED": ["PICKED_UP", "FAILED"],
        "PICKED_UP": ["IN_TRANSIT", "FAILED"],
        "IN_TRANSIT": ["OUT_FOR_DELIVERY", "DELIVERED", "FAILED", "RETURNED", "LOST"],
        "OUT_FOR_DELIVERY": ["DELIVERED", "FAILED", "RETURNED"],
        "DELIVERED": [],
        "FAILED": ["RETURNED"],
        "RETURNED": [],
        "LOST": [],
    },
    EntityType.GRN: {
        "DRAFT": ["RAISED"],
        "RAISED": ["PENDING_APPROVAL", "APPROVED"],
        "PENDING_APPROVAL": ["APPROVED"],
        "APPROVED": ["INVOICED", "CLOSED"],
        "INVOICED": ["CLOSED"],
        "CLOSED": [],
    },
    EntityType.INVOICE: {
        "RAISED": ["PENDING_APPROVAL", "APPROVED", "DISPUTED", "CANCELLED"],
        "PENDING_APPROVAL": ["APPROVED", "DISPUTED", "CANCELLED"],
        "APPROVED": ["PAID"],
        "PAID": [],
        "DISPUTED": ["RAISED", "CANCELLED"],
        "CANCELLED": [],
    },
}


def validate_transition(entity_type: EntityType | str, current, new) -> dict:
    """
    Check a unified status move against ``ALLOWED_TRANSITIONS``.

    No current status means a new record: any target is accepted.  A move
    to the same status is accepted with a warning.  Backward moves and moves
    that skip a state are rejected with a reason naming the allowed targets.
    """
    et = EntityType(entity_type)
    cur = current.value if isinstance(current, Enum) else current
    to = new.value if isinstance(new, Enum) else new
    result = {"valid": True, "from": cur, "to": to, "reason": None, "warnings": []}

    if _blank(cur):
        return result
    if cur == to:
        result["warnings"].append(f"Status unchanged: {cur} → {to}")
        return result

    rules = ALLOWED_TRANSITIONS[et]
    allowed = rules.get(cur)
    if allowed is None:
        result["warnings"].append(f"Unknown current status: {cur} for {et.value}")
        return result
    if to in allowed:
        return result

    order = list(rules)
    result["valid"] = False
    if to not in rules:
        result["reason"] = f"Unknown target status: {to} for {et.value}"
    elif order.index(to) < order.index(cur):
        result["reason"] = f"Backwards transition not allowed: {cur} → {to} for {et.value}"
    else:
        result["reason"] = (
            f"Status skipping not allowed: {cur} → {to} for {et.value}. "
            f"Allowed: [{', '.join(allowed)}]"
        )
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def map_legacy_to_unified(entity_type: EntityType | str, legacy_value: str | None):
    """Return the unified enum member for *legacy_value*, or ``None`` if unmapped."""
    if _blank(legacy_value):
        return None
    table = LEGACY_TO_UNIFIED[EntityType(entity_type)]
    return table.get(legacy_value)


def map_grn_to_unified(grn_status: str | None, status: str | None):
    """GRN inference: an approval-workflow ``grn_status`` wins over ``status``."""
    if not _blank(grn_status) and grn_status in GRN_APPROVAL_STATUS_MAP:
        return GRN_APPROVAL_STATUS_MAP[grn_status]
    return map_legacy_to_unified(EntityType.GRN, status)


def map_unified_to_legacy(entity_type: EntityType | str, unified_value) -> str | None:
    """Reverse lookup used when dual-writing a unified status change."""
    if _blank(unified_value):
        return None
    key = unified_value.value if isinstance(unified_value, Enum) else unified_value
    return UNIFIED_TO_LEGACY[EntityType(entity_type)].get(key)


def parse_unified(entity_type: EntityType | str, value):
    """Return the enum member for *value* within *entity_type*'s vocabulary, or ``None``."""
    if _blank(value):
        return None
    enum_cls = UNIFIED_ENUMS[EntityType(entity_type)]
    try:
        return enum_cls(value)
    except ValueError:
        return None
