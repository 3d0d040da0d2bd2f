"""
Migration reporting blueprint (read-only).

Endpoints:
    GET /api/v1/migration/logs            — migration log, filtered + paginated
    GET /api/v1/migration/logs/<id>       — single log entry
    GET /api/v1/migration/logs/summary    — counts by action and by source
    GET /api/v1/migration/coverage        — unified field coverage report
    GET /api/v1/migration/cascade         — cascade integrity report
    GET /api/v1/migration/readiness       — rollout readiness scorecard

Log filters: entity_type, entity_id, action, source, updated_by,
since / until (ISO-8601, ``since <= timestamp < until``).
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from status_reconciler.blueprints import paginate_query, timestamp_arg
from status_reconciler.core.exceptions import ConfigurationError
from status_reconciler.models import db
from status_reconciler.models.migration_log import StatusMigrationLog
from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.cascade_auditor import CascadeAuditor
from status_reconciler.services.coverage_auditor import CoverageAuditor
from status_reconciler.services.migration_log_service import count_by_action, count_by_source
from status_reconciler.services.readiness_evaluator import ReadinessEvaluator
from status_reconciler.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migration_bp = Blueprint("migration_bp", __name__, url_prefix="/api/v1/migration")

_EQUALITY_FILTERS = ("entity_type", "entity_id", "action", "source", "updated_by")


def _flags():
    return RolloutFlags.from_config(current_app.config)


@migration_bp.errorhandler(ConfigurationError)
def _bad_flags(exc):
    logger.error("Rollout flag misconfigured: %s", exc)
    return api_error(E.CONFIGURATION, str(exc), details={"key": exc.key})


# ── Migration log ────────────────────────────────────────────────────────────

@migration_bp.route("/logs", methods=["GET"])
def list_logs():
    q = StatusMigrationLog.query
    for name in _EQUALITY_FILTERS:
        value = request.args.get(name)
        if value:
            q = q.filter(getattr(StatusMigrationLog, name) == value)

    try:
        since = timestamp_arg("since")
        until = timestamp_arg("until")
    except ValueError:
        return api_error(
            E.VALIDATION_INVALID, "since/until must be ISO-8601 timestamps",
            details={"since": request.args.get("since"), "until": request.args.get("until")},
        )
    if since is not None:
        q = q.filter(StatusMigrationLog.timestamp >= since)
    if until is not None:
        q = q.filter(StatusMigrationLog.timestamp < until)

    logs, page = paginate_query(
        q.order_by(StatusMigrationLog.timestamp.desc(), StatusMigrationLog.id.desc())
    )
    return jsonify({"items": [log.to_dict() for log in logs], **page})


@migration_bp.route("/logs/<int:log_id>", methods=["GET"])
def get_log(log_id):
    log = db.session.get(StatusMigrationLog, log_id)
    if log is None:
        return api_error(E.NOT_FOUND, f"Migration log entry {log_id} not found")
    return jsonify(log.to_dict())


@migration_bp.route("/logs/summary", methods=["GET"])
def log_summary():
    by_action = count_by_action()
    return jsonify({
        "total": sum(by_action.values()),
        "byAction": by_action,
        "bySource": count_by_source(),
    })


# ── Reports ──────────────────────────────────────────────────────────────────

@migration_bp.route("/coverage", methods=["GET"])
def coverage():
    return jsonify(CoverageAuditor(_flags()).run().to_dict())


@migration_bp.route("/cascade", methods=["GET"])
def cascade():
    return jsonify(CascadeAuditor(_flags()).run().to_dict())


@migration_bp.route("/readiness", methods=["GET"])
def readiness():
    return jsonify(ReadinessEvaluator(_flags()).evaluate().to_dict())
