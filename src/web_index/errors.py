"""Exceptions raised by the web index.

Every failure surfaces to the immediate caller as a subclass of
`WebIndexError`. Nothing in the package substitutes defaults for malformed
domain data.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class WebIndexError(ValueError):
    """Base class for web index failures."""


class InvalidUrl(WebIndexError):
    def __init__(self, url: str, reason: str = "unparseable url"):
        super().__init__(f"{reason}: {url!r}")
        self.url = url
        self.reason = reason


class NoHost(WebIndexError):
    def __init__(self, url: str):
        super().__init__(f"url has no host: {url!r}")
        self.url = url


class NoRegisteredDomain(WebIndexError):
    def __init__(self, host: str):
        super().__init__(f"no registered domain for host: {host!r}")
        self.host = host


class SchemaMismatch(WebIndexError):
    """A table is missing a column, or a column has the wrong type or nulls."""

    def __init__(self, message: str, *, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


class MalformedField(WebIndexError):
    def __init__(self, field: str, value: Any, reason: str = ""):
        msg = f"malformed {field}: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.field = field
        self.value = value


class MalformedTimestamp(MalformedField):
    pass


class MalformedUrl(MalformedField):
    pass


class MalformedHeaders(MalformedField):
    pass


class UnrecognizedQuery(WebIndexError):
    def __init__(self, text: str, reasons: Optional[Dict[str, str]] = None):
        super().__init__(f"unrecognized query: {text!r}")
        self.text = text
        # Why each query shape rejected the text, keyed by shape name.
        self.reasons = dict(reasons or {})


class InvalidRecordType(WebIndexError):
    def __init__(self, record_type: Any, expected: str):
        super().__init__(f"record type {record_type!r} is not a {expected} type")
        self.record_type = record_type
        self.expected = expected


class PartitionMismatch(WebIndexError):
    """A record would be stored under a different partition than its insertion query."""

    def __init__(self, expected: str, actual: str, url: str):
        super().__init__(f"record {url!r} belongs in {actual!r}, not {expected!r}")
        self.expected = expected
        self.actual = actual
        self.url = url
