"""
Pre-flight environment check run before any reconciliation job.

Checks:
  1. Database URL configured (credentials masked in output)
  2. Store reachable (``SELECT 1``)
  3. Reports directory writable
  4. Backups directory writable
  5. Rollout flags are "true" / "false"

Nothing here reads or writes workflow data.

Usage:
    result = check_environment(app)
    result["ok"]      # False when any check FAILs
"""

import logging
import os
import re
import tempfile
import time

from status_reconciler.core.exceptions import ConfigurationError
from status_reconciler.models import db
from status_reconciler.rollout import parse_flag

logger = logging.getLogger(__name__)

FLAG_KEYS = ("DUAL_WRITE_ENABLED", "SAFE_MODE", "READ_FROM_UNIFIED")

_CREDENTIALS_RE = re.compile(r"//([^:/@]+):([^@]+)@")


def mask_database_url(url: str | None) -> str | None:
    """Replace the password in *url* with ``***``."""
    if not url:
        return url
    return _CREDENTIALS_RE.sub(r"//\1:***@", url)


def _check(name: str, status: str, message: str, details: dict | None = None) -> dict:
    marker = {"PASS": "✅", "FAIL": "❌"}.get(status, "⚠️")
    log = logger.info if status == "PASS" else logger.warning
    log("%s %s: %s", marker, name, message)
    return {"name": name, "status": status, "message": message, "details": details or {}}


def _writable(path: str) -> tuple[bool, str]:
    try:
        os.makedirs(path, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path, prefix=".preflight-"):
            pass
    except OSError as exc:
        return False, str(exc)
    return True, ""


def check_environment(app) -> dict:
    """Run every pre-flight check against *app*'s configuration."""
    cfg = app.config
    checks = []

    url = cfg.get("SQLALCHEMY_DATABASE_URI")
    if url:
        checks.append(_check("Database URL", "PASS", "Database URL is configured",
                             {"url": mask_database_url(url)}))
    else:
        checks.append(_check("Database URL", "FAIL", "DATABASE_URL is not set"))

    with app.app_context():
        try:
            t0 = time.perf_counter()
            db.session.execute(db.text("SELECT 1"))
            latency = round((time.perf_counter() - t0) * 1000, 1)
            checks.append(_check("Database connectivity", "PASS", "Store answered SELECT 1",
                                 {"latency_ms": latency}))
        except Exception as exc:
            checks.append(_check("Database connectivity", "FAIL", f"Store unreachable: {exc}"))
        finally:
            db.session.remove()

    for key in ("REPORTS_DIR", "BACKUPS_DIR"):
        path = cfg.get(key)
        ok, error = _writable(path) if path else (False, "not configured")
        if ok:
            checks.append(_check(key, "PASS", f"{path} is writable"))
        else:
            checks.append(_check(key, "FAIL", f"{path} is not writable: {error}"))

    for key in FLAG_KEYS:
        raw = cfg.get(key)
        try:
            parse_flag(key, raw, default=False)
            checks.append(_check(key, "PASS", f"{key}={raw}"))
        except ConfigurationError as exc:
            checks.append(_check(key, "FAIL", str(exc)))

    ok = all(c["status"] != "FAIL" for c in checks)
    logger.info("Environment validation %s (%d checks)", "passed" if ok else "FAILED", len(checks))
    return {"ok": ok, "checks": checks}
