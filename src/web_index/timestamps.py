"""RFC3339 timestamp text used in tables and query URIs.

Timestamps are written in UTC with second precision and an explicit ``Z``
designator, e.g. ``2024-01-02T12:13:14Z``. Anything else is rejected when
read back.

Sub-second precision is discarded on write. Records carrying fractional
seconds therefore do not survive a table round trip unchanged; this matches
the files already written to the index and is kept until the stored format
is revisited.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from .errors import MalformedTimestamp

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_RFC3339_SECONDS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


def ensure_utc(value: datetime, field: str = "timestamp") -> datetime:
    """Return ``value`` converted to UTC; naive datetimes are rejected."""

    if not isinstance(value, datetime):
        raise MalformedTimestamp(field, value, "expected a datetime")
    if value.tzinfo is None or value.utcoffset() is None:
        raise MalformedTimestamp(field, value, "naive datetime, expected UTC")
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime, field: str = "timestamp") -> str:
    return ensure_utc(value, field).strftime(RFC3339_FORMAT)


def parse_timestamp(text: object, field: str = "timestamp") -> datetime:
    if not isinstance(text, str) or not _RFC3339_SECONDS_RE.match(text):
        raise MalformedTimestamp(field, text, "expected RFC3339 UTC with second precision")
    try:
        return datetime.strptime(text, RFC3339_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise MalformedTimestamp(field, text, str(e)) from e
