"""Shared request/response helpers."""

import math
from datetime import datetime, timezone

from vesitrail.exceptions import ValidationError


def parse_positive_int(value, default: int, field: str, maximum: int | None = None) -> int:
    """Parse a query-string integer such as ``page`` or ``page_size``."""
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if number < 1:
        raise ValidationError(f"{field} must be at least 1", field=field)
    if maximum is not None:
        number = min(number, maximum)
    return number


def page_result(items: list, total_count: int, page: int, page_size: int) -> dict:
    """Shape one page of results the way every list endpoint returns it."""
    total_pages = math.ceil(total_count / page_size) if page_size else 0
    return {
        "data": items,
        "total_count": total_count,
        "total_pages": total_pages,
        "current_page": page,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }


def paginate_list(items: list, page: int, page_size: int) -> dict:
    """Paginate an already materialized list."""
    start = (page - 1) * page_size
    return page_result(items[start:start + page_size], len(items), page, page_size)


def request_data(request) -> dict:
    """JSON body if there is one, otherwise the submitted form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_bool(value) -> bool | None:
    """Checkbox/JSON style boolean; None when the value was not sent."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "on", "yes")


def parse_float(value, field: str, default: float = 0.0) -> float:
    if value in (None, ""):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
