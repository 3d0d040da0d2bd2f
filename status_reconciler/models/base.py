"""
Shared column helpers for workflow and directory models.

Workflow tables mirror the original document collections: identifiers are
strings and parent/child linkage columns carry no foreign-key constraint,
so orphaned references stay representable and auditable.
"""

import uuid
from datetime import UTC, datetime

from status_reconciler.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(UTC)


class TimestampedModel(db.Model):
    """Abstract base adding created_at / updated_at."""
    __abstract__ = True

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )


def _iso(value):
    return value.isoformat() if value else None
