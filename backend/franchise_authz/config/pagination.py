"""Limit/offset bounds for list endpoints (audit history)."""
from typing import Tuple

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    """Parse query-string values; limit is clamped to [1, MAX_LIMIT], a negative offset is rejected."""
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    if offset < 0:
        raise ValueError('offset must be >= 0')
    return max(1, min(limit, MAX_LIMIT)), offset
