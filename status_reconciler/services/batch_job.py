"""
Batch job harness shared by every reconciliation command.

``run_batch_job`` does the plumbing once: build the app, enter its context,
ping the store, parse the rollout flags, run the job, write its JSON report,
log the elapsed time and release the session.  Jobs receive the parsed
``RolloutFlags`` and return a JSON-ready dict.

Exit status:
  0  job finished (findings and NOT READY verdicts are not failures)
  1  store unreachable or flags unparseable; nothing was processed
  n  the job's own ``exit_code`` key, when it sets one

Usage:
    def work(flags):
        return CoverageAuditor(flags).run().to_dict()

    sys.exit(run_batch_job("coverage", work, report_name="unified-field-coverage"))
"""

import json
import logging
import os
import time
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from status_reconciler.core.exceptions import ConfigurationError, StoreUnavailableError
from status_reconciler.models import db
from status_reconciler.rollout import RolloutFlags

logger = logging.getLogger(__name__)

BANNER_WIDTH = 78


def check_connectivity() -> None:
    """Raise ``StoreUnavailableError`` unless the store answers ``SELECT 1``."""
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailableError(f"Database unreachable: {exc}") from exc


def report_filename(report_name: str, when: datetime | None = None) -> str:
    when = when or datetime.now(UTC)
    return f"{report_name}-{when.strftime('%Y%m%dT%H%M%SZ')}.json"


def write_json_report(reports_dir: str, report_name: str, payload: dict) -> str:
    os.makedirs(reports_dir, exist_ok=True)
    path = os.path.join(reports_dir, report_filename(report_name))
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str)
    return path


def run_batch_job(job_name, work, *, app=None, config_name=None, report_name=None) -> int:
    """Run *work(flags)* inside an app context and return a process exit status."""
    if app is None:
        from status_reconciler import create_app
        app = create_app(config_name)

    extra = {"job": job_name}
    started = time.perf_counter()
    logger.info("═" * BANNER_WIDTH, extra=extra)
    logger.info("  %s  (%s)", job_name.upper(), datetime.now(UTC).isoformat(), extra=extra)
    logger.info("═" * BANNER_WIDTH, extra=extra)

    with app.app_context():
        try:
            check_connectivity()
            flags = RolloutFlags.from_config(app.config)
        except StoreUnavailableError as exc:
            logger.error("❌ %s; aborting before any processing", exc, extra=extra)
            return 1
        except ConfigurationError as exc:
            logger.error("❌ %s", exc, extra=extra)
            return 1

        try:
            logger.info("Rollout phase: %s", flags.phase.value, extra=extra)
            result = work(flags) or {}
            if report_name:
                path = write_json_report(app.config["REPORTS_DIR"], report_name, result)
                logger.info("📄 Report saved to %s", path, extra=extra)
        finally:
            db.session.remove()

    elapsed_ms = round((time.perf_counter() - started) * 1000)
    logger.info("%s finished in %.1fs", job_name, elapsed_ms / 1000,
                extra={**extra, "duration_ms": elapsed_ms})
    return int(result.get("exit_code", 0)) if isinstance(result, dict) else 0
