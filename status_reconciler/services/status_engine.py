"""
Status Engine — single write path for application status changes.

Callers speak unified statuses only.  The engine works out which columns to
touch from the rollout flags:

  dual-write off   legacy column(s) written from the reverse mapping;
                   unified column untouched
  dual-write on    legacy and unified columns written in one UPDATE,
                   unified companions stamped

Each change appends exactly one STATUS_UPDATE migration-log row in the
same transaction.

``effective_status`` is the matching read path: which of the two fields
the application should believe, given read-from-unified and safe-mode.

Usage:
    from status_reconciler.services.status_engine import StatusEngine

    engine = StatusEngine(flags)
    engine.update_status("Shipment", "SHP-1", "DELIVERED", updated_by="courier-webhook")
    engine.effective_status("Shipment", shipment)   # -> "DELIVERED"
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import update

from status_reconciler.core.exceptions import NotFoundError, ValidationError
from status_reconciler.models import db
from status_reconciler.models.migration_log import write_migration_log
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.entity_registry import EntitySpec, get_spec
from status_reconciler.services.status_mapping import (
    GRN_UNIFIED_TO_STATUS,
    MAPPING_VERSION,
    EntityType,
    map_unified_to_legacy,
    parse_unified,
    validate_transition,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "status-engine"


def _load(spec: EntitySpec, entity_id: str):
    stmt = spec.select(spec.id_column == entity_id)
    record = db.session.execute(stmt).scalar_one_or_none()
    if record is None:
        raise NotFoundError(resource=spec.entity_type.value, resource_id=entity_id)
    return record


def _legacy_values(spec: EntitySpec, unified: str) -> dict[str, str]:
    """Legacy column → value implied by *unified*; empty when there is no legacy equivalent."""
    legacy = map_unified_to_legacy(spec.entity_type, unified)
    values = {spec.legacy_attr: legacy} if legacy else {}
    if spec.entity_type == EntityType.GRN and unified in GRN_UNIFIED_TO_STATUS:
        values["status"] = GRN_UNIFIED_TO_STATUS[unified]
    return values


class StatusEngine:
    """Flag-aware status writes and reads for every workflow entity."""

    def __init__(self, flags: RolloutFlags):
        self.flags = flags

    def update_status(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        new_unified,
        *,
        updated_by: str,
        reason: str | None = None,
        source: str = DEFAULT_SOURCE,
    ) -> dict:
        """
        Move one record to *new_unified*.

        Raises:
            NotFoundError: no record of *entity_type* with that id.
            ValidationError: *new_unified* is not in the entity's vocabulary,
                is not an allowed move from the current status,
                or has no legacy equivalent while dual-write is off.
        """
        spec = get_spec(entity_type)
        target = parse_unified(spec.entity_type, new_unified)
        if target is None:
            raise ValidationError(
                f"Invalid {spec.entity_type.value} status: {new_unified}",
                details={"entity_type": spec.entity_type.value, "status": new_unified},
            )
        record = _load(spec, entity_id)

        current = self.effective_status(spec.entity_type, record)
        check = validate_transition(spec.entity_type, current, target)
        if not check["valid"]:
            raise ValidationError(
                check["reason"],
                details={"entity_type": spec.entity_type.value, "entity_id": entity_id,
                         "from": current, "to": target.value},
            )
        for warning in check["warnings"]:
            logger.warning("%s %s: %s", spec.entity_type.value, entity_id, warning,
                           extra={"entity_type": spec.entity_type.value, "entity_id": entity_id})

        previous_legacy = spec.legacy_snapshot(record)
        previous_unified = spec.unified_value(record)

        values = _legacy_values(spec, target.value)
        if self.flags.dual_write_enabled:
            values[spec.unified_attr] = target.value
            values[spec.updated_at_attr] = datetime.now(UTC)
            values[spec.updated_by_attr] = updated_by
        elif not values:
            raise ValidationError(
                f"{target.value} has no legacy {spec.entity_type.value} equivalent; enable dual-write first",
                details={"entity_type": spec.entity_type.value, "status": target.value},
            )

        db.session.execute(
            update(spec.model)
            .where(spec.id_column == entity_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        db.session.expire(record)

        new_legacy = spec.legacy_snapshot(record)
        new_unified_value = spec.unified_value(record)
        write_migration_log(
            entity_type=spec.entity_type.value,
            entity_id=entity_id,
            action="STATUS_UPDATE",
            source=source,
            updated_by=updated_by,
            previous_legacy_status=previous_legacy,
            new_legacy_status=new_legacy,
            previous_unified_status=previous_unified,
            new_unified_status=new_unified_value,
            metadata={
                "mappingVersion": MAPPING_VERSION,
                "dualWrite": self.flags.dual_write_enabled,
                "reason": reason,
            },
        )
        db.session.commit()

        logger.info(
            "%s %s: %s → %s", spec.entity_type.value, entity_id, previous_unified or previous_legacy,
            target.value,
            extra={"entity_type": spec.entity_type.value, "entity_id": entity_id, "action": "STATUS_UPDATE"},
        )
        return {
            "entityType": spec.entity_type.value,
            "entityId": entity_id,
            "previousLegacyStatus": previous_legacy,
            "newLegacyStatus": new_legacy,
            "previousUnifiedStatus": previous_unified,
            "newUnifiedStatus": new_unified_value,
            "dualWrite": self.flags.dual_write_enabled,
        }

    def effective_status(self, entity_type: EntityType | str, record) -> str | None:
        """Unified status the application should act on for *record*."""
        spec = get_spec(entity_type)
        from_legacy = spec.expected_unified(record)
        from_unified = parse_unified(spec.entity_type, spec.unified_value(record))

        if not self.flags.read_from_unified:
            chosen = from_legacy or from_unified
            return chosen.value if chosen else None

        if from_unified is None:
            return from_legacy.value if from_legacy else None
        if self.flags.safe_mode and from_legacy is not None and from_legacy != from_unified:
            logger.warning(
                "%s %s: unified %s disagrees with legacy %s; safe mode keeps legacy",
                spec.entity_type.value, spec.record_id(record), from_unified.value, from_legacy.value,
                extra={"entity_type": spec.entity_type.value, "entity_id": spec.record_id(record)},
            )
            return from_legacy.value
        return from_unified.value
