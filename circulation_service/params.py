"""
Validation of report parameters. Everything here runs before a snapshot is
read, so a bad request never produces partial output.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from .aggregates import LoanStatus
from .errors import InvalidParameter

MAX_SEARCH_LENGTH = 255
STATUS_ALL = "ALL"
STATUS_FILTERS = (STATUS_ALL,) + tuple(s.value for s in LoanStatus)


def parse_search(value) -> Optional[str]:
    """
    Blank or missing search text means "no filter". Anything else is kept
    as given, surrounding spaces included.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParameter("search", "must be text")
    if len(value) > MAX_SEARCH_LENGTH:
        raise InvalidParameter("search", f"longer than {MAX_SEARCH_LENGTH} characters")
    if any(not ch.isprintable() for ch in value):
        raise InvalidParameter("search", "contains control characters")
    if not value.strip():
        return None
    return value


def parse_subject_id(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidParameter("subject_id", "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
    raise InvalidParameter("subject_id", f"must be an integer, got {value!r}")


def parse_status_filter(value) -> str:
    if value is None:
        return STATUS_ALL
    if not isinstance(value, str):
        raise InvalidParameter("status", f"must be one of {', '.join(STATUS_FILTERS)}")
    normalized = value.strip().upper() or STATUS_ALL
    if normalized not in STATUS_FILTERS:
        raise InvalidParameter("status", f"must be one of {', '.join(STATUS_FILTERS)}, got {value!r}")
    return normalized


def parse_as_of(value) -> Optional[date]:
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidParameter("as_of", f"must be a YYYY-MM-DD date, got {value!r}")
