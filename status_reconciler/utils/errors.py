"""Standardised API error responses.

Usage
-----
    from status_reconciler.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Migration log entry not found")
    return api_error(E.VALIDATION_INVALID, "since must be an ISO-8601 timestamp")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Configuration – HTTP 500
    CONFIGURATION = "ERR_CONFIGURATION"

    # Server – HTTP 500 / 503
    STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFIGURATION: 500,
    E.STORE_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offending parameter, record id, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
