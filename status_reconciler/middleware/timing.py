"""
Request timing for the reporting API.

Report endpoints run full-table scans, so every response carries its
duration and a request id, and slow scans are logged at WARNING.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Readiness and cascade scans over production data routinely take seconds
SLOW_THRESHOLD_MS = 5000


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "request_id": g.request_id,
        }
        if response.status_code >= 500:
            logger.error("Server error: %s %s %d", request.method, request.path,
                         response.status_code, extra=extra)
        elif duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow report: %s %s %d", request.method, request.path,
                           response.status_code, extra=extra)
        else:
            logger.debug("Request: %s %s %d", request.method, request.path,
                         response.status_code, extra=extra)
        return response
