"""Queries against the web index and their URI encoding.

An `InsertionQuery` says where a new record goes. The three read query
shapes say what to fetch back:

  - `DeterministicQuery`: one exact record, named by record type, url,
    timestamp and the RequestID of the batch that wrote it
  - `SimpleQuery`: records for a url from fetchers of a given calibre
  - `TimeBoundedQuery`: a `SimpleQuery` restricted to [not_before, not_after)

All three share one URI scheme::

    thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&timestamp=2024-01-02T12%3A13%3A14Z&request_id=request%3A...
    thema://web-index/get?url=...&calibre=0&calibre_strict=true
    thema://web-index/get?url=...&not_before=...&not_after=...&calibre=0&calibre_strict=false

The authority is a free-form index label and is not part of the query.
`decode` tries Deterministic, then TimeBounded, then Simple and returns the
first shape that parses. This only works because TimeBounded's required
parameters are a strict superset of Simple's; a future shape whose
parameters overlap without nesting needs an explicit discriminator.

Query timestamps carry second precision, like the URI text; sub-second
parts are dropped when a query is built so that ``decode(encode(q)) == q``.
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Union

from . import config
from .errors import MalformedField, UnrecognizedQuery, WebIndexError
from .path import LogicalPath, to_logical_path, to_physical_path
from .records import DataType, MetadataType, RecordType, RequestID, as_record_type
from .timestamps import ensure_utc, format_timestamp, parse_timestamp
from .urls import canonical_url

if TYPE_CHECKING:
    from .domain import Extractor

logger = logging.getLogger(__name__)

SCHEME = "thema"

RecordTypeLike = Union[RecordType, DataType, MetadataType, str]


def _query_timestamp(value: datetime, field: str) -> datetime:
    return ensure_utc(value, field).replace(microsecond=0)


def _check_calibre(value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 255:
        raise MalformedField("calibre", value, "expected uint8")


def _partition_dir(record_type: RecordType, year: int, month: int) -> str:
    return f"{record_type.dir}/{year}/{month:02d}"


@dataclass(frozen=True)
class InsertionQuery:
    """Where a record inserted for ``url`` at ``timestamp`` belongs."""

    record_type: RecordType
    url: str
    timestamp: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", as_record_type(self.record_type))
        object.__setattr__(self, "url", canonical_url(self.url))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @classmethod
    def get(cls, url: str, timestamp: datetime) -> "InsertionQuery":
        return cls(RecordType.GET, url, timestamp)

    @classmethod
    def head(cls, url: str, timestamp: datetime) -> "InsertionQuery":
        return cls(RecordType.HEAD, url, timestamp)

    @classmethod
    def get_metadata(cls, url: str, timestamp: datetime) -> "InsertionQuery":
        return cls(RecordType.GET_METADATA, url, timestamp)

    @classmethod
    def head_metadata(cls, url: str, timestamp: datetime) -> "InsertionQuery":
        return cls(RecordType.HEAD_METADATA, url, timestamp)

    @classmethod
    def for_record(cls, record_type: RecordTypeLike, record: object) -> "InsertionQuery":
        """Build the insertion query for a GET/HEAD response from its own url and timestamp."""

        data_type = DataType.from_record_type(as_record_type(record_type))
        return cls(data_type.to_record_type(), getattr(record, "url"), getattr(record, "timestamp"))

    def dir(self) -> str:
        return _partition_dir(self.record_type, self.timestamp.year, self.timestamp.month)

    def logical_path(self, extractor: "Extractor") -> LogicalPath:
        return to_logical_path(self, extractor)

    def compute_path(self, extractor: "Extractor") -> str:
        """Physical path text for this insertion, using a caller-owned extractor."""

        return str(to_physical_path(self.logical_path(extractor)))

    def path(self) -> str:
        """Physical path text for this insertion.

        Builds a new extractor on every call; batch callers should keep one
        extractor and use `compute_path` instead.
        """

        from .domain import Extractor

        return self.compute_path(Extractor())

    def retrieval(self, request_id: RequestID) -> "DeterministicQuery":
        return DeterministicQuery(self.record_type, self.url, self.timestamp, request_id)


@dataclass(frozen=True)
class DeterministicQuery:
    record_type: RecordType
    url: str
    timestamp: datetime
    request_id: RequestID

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", as_record_type(self.record_type))
        object.__setattr__(self, "url", canonical_url(self.url))
        object.__setattr__(self, "timestamp", _query_timestamp(self.timestamp, "timestamp"))
        if not isinstance(self.request_id, RequestID):
            object.__setattr__(self, "request_id", RequestID.parse(self.request_id))

    def params(self) -> List[Tuple[str, str]]:
        return [
            ("url", self.url),
            ("timestamp", format_timestamp(self.timestamp)),
            ("request_id", str(self.request_id)),
        ]

    @classmethod
    def from_params(cls, record_type: RecordType, params: Dict[str, List[str]]) -> "DeterministicQuery":
        return cls(
            record_type,
            _url_param(params),
            parse_timestamp(_one(params, "timestamp"), "timestamp"),
            RequestID.parse(_one(params, "request_id")),
        )

    def partition_dirs(self) -> List[str]:
        return [_partition_dir(self.record_type, self.timestamp.year, self.timestamp.month)]


@dataclass(frozen=True)
class SimpleQuery:
    record_type: RecordType
    url: str
    calibre: int = 0
    calibre_strict: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", as_record_type(self.record_type))
        object.__setattr__(self, "url", canonical_url(self.url))
        _check_calibre(self.calibre)

    def accepts_calibre(self, calibre: int) -> bool:
        """Strict queries want exactly ``calibre``; others accept anything at least as good."""

        return calibre == self.calibre if self.calibre_strict else calibre >= self.calibre

    def params(self) -> List[Tuple[str, str]]:
        return [
            ("url", self.url),
            ("calibre", str(self.calibre)),
            ("calibre_strict", _format_bool(self.calibre_strict)),
        ]

    @classmethod
    def from_params(cls, record_type: RecordType, params: Dict[str, List[str]]) -> "SimpleQuery":
        return cls(
            record_type,
            _url_param(params),
            _parse_calibre(_one(params, "calibre")),
            _parse_bool("calibre_strict", _one(params, "calibre_strict")),
        )


@dataclass(frozen=True)
class TimeBoundedQuery:
    record_type: RecordType
    url: str
    not_before: datetime
    not_after: datetime
    calibre: int = 0
    calibre_strict: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", as_record_type(self.record_type))
        object.__setattr__(self, "url", canonical_url(self.url))
        object.__setattr__(self, "not_before", _query_timestamp(self.not_before, "not_before"))
        object.__setattr__(self, "not_after", _query_timestamp(self.not_after, "not_after"))
        _check_calibre(self.calibre)

    def accepts_calibre(self, calibre: int) -> bool:
        return calibre == self.calibre if self.calibre_strict else calibre >= self.calibre

    def contains(self, timestamp: datetime) -> bool:
        ts = ensure_utc(timestamp)
        return self.not_before <= ts < self.not_after

    def months(self) -> List[Tuple[int, int]]:
        """(year, month) partitions the window touches; empty for an empty window."""

        if self.not_after <= self.not_before:
            return []
        # not_after is exclusive, so a window ending exactly on a month
        # boundary does not reach into that month.
        last = self.not_after
        if (last.day, last.hour, last.minute, last.second) == (1, 0, 0, 0):
            end = (last.year, last.month - 1) if last.month > 1 else (last.year - 1, 12)
        else:
            end = (last.year, last.month)
        out: List[Tuple[int, int]] = []
        year, month = self.not_before.year, self.not_before.month
        while (year, month) <= end:
            out.append((year, month))
            year, month = (year, month + 1) if month < 12 else (year + 1, 1)
        return out

    def partition_dirs(self) -> List[str]:
        return [_partition_dir(self.record_type, y, m) for y, m in self.months()]

    def params(self) -> List[Tuple[str, str]]:
        return [
            ("url", self.url),
            ("not_before", format_timestamp(self.not_before)),
            ("not_after", format_timestamp(self.not_after)),
            ("calibre", str(self.calibre)),
            ("calibre_strict", _format_bool(self.calibre_strict)),
        ]

    @classmethod
    def from_params(cls, record_type: RecordType, params: Dict[str, List[str]]) -> "TimeBoundedQuery":
        return cls(
            record_type,
            _url_param(params),
            parse_timestamp(_one(params, "not_before"), "not_before"),
            parse_timestamp(_one(params, "not_after"), "not_after"),
            _parse_calibre(_one(params, "calibre")),
            _parse_bool("calibre_strict", _one(params, "calibre_strict")),
        )


Query = Union[DeterministicQuery, SimpleQuery, TimeBoundedQuery]

# Most specific shape first; see the module docstring.
_DECODE_ORDER: Sequence[type] = (DeterministicQuery, TimeBoundedQuery, SimpleQuery)


def _one(params: Dict[str, List[str]], name: str) -> str:
    values = params.get(name)
    if not values:
        raise MalformedField(name, None, "missing parameter")
    if len(values) > 1:
        raise MalformedField(name, values, "repeated parameter")
    return values[0]


def _url_param(params: Dict[str, List[str]]) -> str:
    raw = _one(params, "url")
    try:
        return canonical_url(raw)
    except WebIndexError as e:
        raise MalformedField("url", raw, str(e)) from e


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _parse_bool(name: str, text: str) -> bool:
    if text == "true":
        return True
    if text == "false":
        return False
    raise MalformedField(name, text, "expected true or false")


def _parse_calibre(text: str) -> int:
    if not text.isdigit() or not text.isascii():
        raise MalformedField("calibre", text, "expected uint8")
    value = int(text)
    _check_calibre(value)
    return value


def encode(query: Query, label: Optional[str] = None) -> str:
    """Render a query as its canonical URI."""

    if not isinstance(query, _DECODE_ORDER):
        raise TypeError(f"not a query: {query!r}")
    authority = label if label is not None else config.index_label()
    params = urllib.parse.urlencode(query.params(), quote_via=urllib.parse.quote, safe="")
    return f"{SCHEME}://{authority}/{query.record_type.dir}?{params}"


def decode(text: str) -> Query:
    """Parse a query URI into the first query shape it satisfies."""

    s = str(text or "").strip()
    try:
        parts = urllib.parse.urlsplit(s)
    except ValueError as e:
        raise UnrecognizedQuery(s, {"uri": str(e)}) from e
    if parts.scheme != SCHEME:
        raise UnrecognizedQuery(s, {"uri": f"scheme must be {SCHEME!r}"})

    token = parts.path.lstrip("/").split("/", 1)[0]
    try:
        record_type = RecordType.from_token(token)
    except WebIndexError as e:
        raise UnrecognizedQuery(s, {"uri": str(e)}) from e

    params = urllib.parse.parse_qs(parts.query, keep_blank_values=True)
    reasons: Dict[str, str] = {}
    for shape in _DECODE_ORDER:
        try:
            query = shape.from_params(record_type, params)
        except WebIndexError as e:
            reasons[shape.__name__] = str(e)
            continue
        logger.debug("decoded %s as %s", s, shape.__name__)
        return query
    raise UnrecognizedQuery(s, reasons)
