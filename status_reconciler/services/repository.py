"""
Cross-table lookups for tables whose links are plain strings.

The workflow tables have no foreign-key constraints between them, so
parent/child resolution is done here, once, by collecting the distinct
parent keys and checking every child against that set.

Usage:
    from status_reconciler.services.repository import find_orphans
    orphans = find_orphans(Order, Shipment, "pr_number", "pr_number")
"""

from __future__ import annotations

from sqlalchemy import select

from status_reconciler.models import db


def distinct_values(model, key: str, *criteria) -> set[str]:
    """Distinct non-blank values of *model.key*."""
    col = getattr(model, key)
    stmt = select(col).where(col.isnot(None), *criteria).distinct()
    return {v for v in db.session.execute(stmt).scalars() if isinstance(v, str) and v.strip()}


def find_orphans(
    parent_model,
    child_model,
    parent_key: str,
    child_key: str,
    *,
    parent_filter=None,
    child_filter=None,
    allow_missing: bool = False,
) -> list:
    """
    Return child rows whose *child_key* does not resolve to any parent.

    A blank or NULL child key is an orphan unless ``allow_missing`` is set,
    in which case the row is not checked at all.
    """
    parent_criteria = [parent_filter] if parent_filter is not None else []
    valid = distinct_values(parent_model, parent_key, *parent_criteria)

    stmt = select(child_model)
    if child_filter is not None:
        stmt = stmt.where(child_filter)
    pk = child_model.__mapper__.primary_key[0]
    stmt = stmt.order_by(pk)

    orphans = []
    for child in db.session.execute(stmt).scalars():
        value = getattr(child, child_key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if not allow_missing:
                orphans.append(child)
            continue
        if value not in valid:
            orphans.append(child)
    return orphans
