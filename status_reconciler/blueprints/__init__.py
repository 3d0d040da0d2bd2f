"""
Status Reconciler
Blueprint registry and shared request helpers.
"""

from datetime import UTC, datetime

from flask import request


def paginate_query(query, default_limit=100, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 100, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, page) where page is {"total", "limit", "offset"}
    """
    total = query.count()
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, {"total": total, "limit": limit, "offset": offset}


def timestamp_arg(name: str) -> datetime | None:
    """Parse an ISO-8601 query parameter; naive values are taken as UTC.

    Raises:
        ValueError: the parameter is present but not a timestamp.
    """
    raw = request.args.get(name)
    if not raw:
        return None
    value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return value if value.tzinfo else value.replace(tzinfo=UTC)
