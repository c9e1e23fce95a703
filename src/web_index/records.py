"""Records stored in the web index.

Four record types live in the index, each under its own top-level
directory:

    Get           get/            GetResponse rows
    Head          head/           HeadResponse rows
    GetMetadata   get-metadata/   Metadata rows
    HeadMetadata  head-metadata/  Metadata rows

`DataType` and `MetadataType` are the narrower groupings; converting a
`RecordType` into either is fallible and raises `InvalidRecordType`.

Every record persisted by one insertion batch shares one `RequestID`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Generic, Iterable, List, Optional, Type, TypeVar, Union

from .errors import InvalidRecordType, MalformedField, MalformedHeaders, MalformedUrl
from .timestamps import ensure_utc
from .urls import canonical_url

T = TypeVar("T")

Headers = Dict[str, str]


class RecordType(Enum):
    GET = "get"
    HEAD = "head"
    GET_METADATA = "get-metadata"
    HEAD_METADATA = "head-metadata"

    @property
    def dir(self) -> str:
        return self.value

    @classmethod
    def from_token(cls, token: str) -> "RecordType":
        try:
            return cls(token)
        except ValueError as e:
            raise InvalidRecordType(token, "record") from e

    @property
    def record_class(self) -> type:
        return _RECORD_CLASSES[self]

    @classmethod
    def for_record_class(cls, record_class: type) -> "RecordType":
        """The record type a GET/HEAD response class is stored under.

        `Metadata` rows live under both metadata types, so asking for it raises
        `InvalidRecordType`; pick the `MetadataType` explicitly instead.
        """

        if record_class is GetResponse:
            return cls.GET
        if record_class is HeadResponse:
            return cls.HEAD
        raise InvalidRecordType(getattr(record_class, "__name__", record_class), "data record class")

    def is_data(self) -> bool:
        return self in (RecordType.GET, RecordType.HEAD)

    def is_metadata(self) -> bool:
        return self in (RecordType.GET_METADATA, RecordType.HEAD_METADATA)


class DataType(Enum):
    GET = "get"
    HEAD = "head"

    @classmethod
    def from_record_type(cls, record_type: RecordType) -> "DataType":
        if not record_type.is_data():
            raise InvalidRecordType(record_type, "data")
        return cls(record_type.value)

    def to_record_type(self) -> RecordType:
        return RecordType(self.value)


class MetadataType(Enum):
    GET_METADATA = "get-metadata"
    HEAD_METADATA = "head-metadata"

    @classmethod
    def from_record_type(cls, record_type: RecordType) -> "MetadataType":
        if not record_type.is_metadata():
            raise InvalidRecordType(record_type, "metadata")
        return cls(record_type.value)

    def to_record_type(self) -> RecordType:
        return RecordType(self.value)


def as_record_type(value: Union[RecordType, DataType, MetadataType, str]) -> RecordType:
    """Widen a record type grouping (or a directory token) to a `RecordType`."""

    if isinstance(value, RecordType):
        return value
    if isinstance(value, (DataType, MetadataType)):
        return value.to_record_type()
    return RecordType.from_token(str(value))


_REQUEST_PREFIX = "request:"


@dataclass(frozen=True)
class RequestID:
    """Identifier shared by every record written in one insertion batch."""

    value: str

    @classmethod
    def new(cls) -> "RequestID":
        return cls(f"{_REQUEST_PREFIX}{uuid.uuid4()}")

    @classmethod
    def parse(cls, text: str) -> "RequestID":
        s = str(text or "")
        if not s.startswith(_REQUEST_PREFIX):
            raise MalformedField("request_id", text, "expected request:<uuid>")
        try:
            parsed = uuid.UUID(s[len(_REQUEST_PREFIX):])
        except ValueError as e:
            raise MalformedField("request_id", text, "expected request:<uuid>") from e
        # Spellings uuid accepts (upper case, braces, urn:uuid:) all name the same id.
        return cls(f"{_REQUEST_PREFIX}{parsed}")

    def __str__(self) -> str:
        return self.value


def _canonical_record_url(value: str, name: str) -> str:
    try:
        return canonical_url(value)
    except ValueError as e:
        raise MalformedUrl(name, value, str(e)) from e


def _check_uint(name: str, value: int, bits: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < (1 << bits):
        raise MalformedField(name, value, f"expected uint{bits}")


def _check_headers(headers: Optional[Headers]) -> None:
    if headers is None:
        return
    if not isinstance(headers, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
    ):
        raise MalformedHeaders("headers", headers, "expected a mapping of str to str")


@dataclass(frozen=True)
class GetResponse:
    """One GET fetch attempt.

    ``data`` is None when no body was captured (redirects, failed attempts);
    an empty body is ``b""``.
    """

    url: str
    request_url: str
    status_code: int
    data: Optional[bytes]
    headers: Optional[Headers]
    timestamp: datetime
    retry_attempt: int
    is_final: bool
    fetcher_name: str
    fetcher_version: str
    fetcher_calibre: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", _canonical_record_url(self.url, "url"))
        object.__setattr__(self, "request_url", _canonical_record_url(self.request_url, "request_url"))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        _check_uint("status_code", self.status_code, 16)
        _check_uint("retry_attempt", self.retry_attempt, 8)
        _check_uint("fetcher_calibre", self.fetcher_calibre, 8)
        _check_headers(self.headers)


@dataclass(frozen=True)
class HeadResponse:
    """One HEAD fetch attempt; like `GetResponse` without a body."""

    url: str
    request_url: str
    status_code: int
    headers: Optional[Headers]
    timestamp: datetime
    retry_attempt: int
    is_final: bool
    fetcher_name: str
    fetcher_version: str
    fetcher_calibre: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", _canonical_record_url(self.url, "url"))
        object.__setattr__(self, "request_url", _canonical_record_url(self.request_url, "request_url"))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        _check_uint("status_code", self.status_code, 16)
        _check_uint("retry_attempt", self.retry_attempt, 8)
        _check_uint("fetcher_calibre", self.fetcher_calibre, 8)
        _check_headers(self.headers)


@dataclass(frozen=True)
class Metadata:
    """Outcome of one retrieval job."""

    state: str
    url: str
    logs: Optional[str] = None
    traceback: Optional[str] = None
    run_time: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", _canonical_record_url(self.url, "url"))


Record = Union[GetResponse, HeadResponse, Metadata]

_RECORD_CLASSES: Dict[RecordType, type] = {
    RecordType.GET: GetResponse,
    RecordType.HEAD: HeadResponse,
    RecordType.GET_METADATA: Metadata,
    RecordType.HEAD_METADATA: Metadata,
}


@dataclass(frozen=True)
class Persisted(Generic[T]):
    """A record together with the identifier of the batch that wrote it."""

    data: T
    request_id: RequestID


def wrap_with_id(records: Iterable[T], request_id: RequestID) -> List[Persisted[T]]:
    return [Persisted(record, request_id) for record in records]


def wrap(records: Iterable[T]) -> List[Persisted[T]]:
    """Wrap records with one freshly generated `RequestID`."""

    return wrap_with_id(records, RequestID.new())


def check_record_class(record_type: RecordType, records: Iterable[object]) -> None:
    """Raise `InvalidRecordType` if a record does not belong under ``record_type``."""

    expected: Type[object] = record_type.record_class
    for record in records:
        if not isinstance(record, expected):
            raise InvalidRecordType(type(record).__name__, record_type.value)
