# Overview: Shared limit/offset pagination for listing services.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError


def parse_optional_int(filters: dict, key: str) -> int | None:
    """Read an integer filter that may arrive as a query-string value."""
    value = filters.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def parse_page_args(filters: dict) -> tuple[int, int]:
    """
    Returns (limit, offset).

    limit defaults to DEFAULT_PAGE_LIMIT and is capped at MAX_PAGE_LIMIT.
    """
    default_limit = current_app.config.get("DEFAULT_PAGE_LIMIT", 50)
    max_limit = current_app.config.get("MAX_PAGE_LIMIT", 200)

    limit = parse_optional_int(filters, "limit")
    offset = parse_optional_int(filters, "offset")

    if limit is None:
        limit = default_limit
    if offset is None:
        offset = 0
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    if offset < 0:
        raise ValidationError("offset must be >= 0")

    return min(limit, max_limit), offset


def paginate(query, *, limit: int, offset: int) -> dict:
    total = query.order_by(None).count()
    rows = query.offset(offset).limit(limit).all()
    return {
        "data": [row.to_dict() for row in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
        },
    }
