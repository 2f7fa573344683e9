"""Mapping of domain exceptions to HTTP responses."""
import math

from fastapi import HTTPException

from zoneclash.core.exceptions import (
    Contention,
    NotFound,
    OnCooldown,
    RangeError,
    RateLimited,
    StateConflict,
    ValidationError,
    ZoneClashException,
)

STATUS_BY_CATEGORY = [
    (ValidationError, 422),
    (RangeError, 403),
    (StateConflict, 409),
    (RateLimited, 429),
    (NotFound, 404),
    (Contention, 503),
]


def to_http_exception(exc: ZoneClashException) -> HTTPException:
    status_code = 400
    for category, code in STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            status_code = code
            break

    headers = None
    if isinstance(exc, OnCooldown):
        headers = {"Retry-After": str(max(1, math.ceil(exc.remaining.total_seconds())))}
    elif isinstance(exc, Contention):
        headers = {"Retry-After": "1"}

    return HTTPException(status_code=status_code, detail=exc.to_dict(), headers=headers)
