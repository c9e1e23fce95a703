"""Record <-> pyarrow Table mapping.

Each record class has a fixed column set. Column names are the record's
field names; a few fields change representation on the way in and out:

  - ``timestamp``: RFC3339 UTC text, second precision (see `timestamps`)
  - ``headers``:   compact JSON object text, null when absent
  - ``data``:      nullable binary; absent bodies are null, never b""

`from_table` is all-or-nothing: a missing or mistyped column, or a null in
a required column, raises `SchemaMismatch`; a bad value raises the matching
`MalformedField` subclass. No row is ever skipped or defaulted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import pyarrow as pa

from .errors import MalformedHeaders, SchemaMismatch
from .records import GetResponse, HeadResponse, Headers, Metadata, RecordType
from .timestamps import format_timestamp, parse_timestamp

R = TypeVar("R")


@dataclass(frozen=True)
class Column:
    name: str
    type: pa.DataType
    nullable: bool = True

    def field(self) -> pa.Field:
        return pa.field(self.name, self.type, nullable=self.nullable)

    def accepts(self, other: pa.DataType) -> bool:
        # Parquet readers may hand back the large variants.
        if pa.types.is_string(self.type):
            return pa.types.is_string(other) or pa.types.is_large_string(other)
        if pa.types.is_binary(self.type):
            return pa.types.is_binary(other) or pa.types.is_large_binary(other)
        return other == self.type


_RESPONSE_HEAD: Tuple[Column, ...] = (
    Column("url", pa.string(), nullable=False),
    Column("request_url", pa.string(), nullable=False),
    Column("status_code", pa.uint16(), nullable=False),
)

_RESPONSE_TAIL: Tuple[Column, ...] = (
    Column("headers", pa.string()),
    Column("timestamp", pa.string(), nullable=False),
    Column("retry_attempt", pa.uint8(), nullable=False),
    Column("is_final", pa.bool_(), nullable=False),
    Column("fetcher_name", pa.string(), nullable=False),
    Column("fetcher_version", pa.string(), nullable=False),
    Column("fetcher_calibre", pa.uint8(), nullable=False),
)

COLUMNS: Dict[type, Tuple[Column, ...]] = {
    GetResponse: _RESPONSE_HEAD + (Column("data", pa.binary()),) + _RESPONSE_TAIL,
    HeadResponse: _RESPONSE_HEAD + _RESPONSE_TAIL,
    Metadata: (
        Column("state", pa.string(), nullable=False),
        Column("url", pa.string(), nullable=False),
        Column("logs", pa.string()),
        Column("traceback", pa.string()),
        Column("run_time", pa.float64()),
    ),
}


def _dump_headers(headers: Optional[Headers]) -> Optional[str]:
    if headers is None:
        return None
    return json.dumps(headers, separators=(",", ":"), ensure_ascii=False)


def _load_headers(text: Optional[str]) -> Optional[Headers]:
    if text is None:
        return None
    try:
        value = json.loads(text)
    except ValueError as e:
        raise MalformedHeaders("headers", text, "invalid JSON") from e
    if not isinstance(value, dict):
        raise MalformedHeaders("headers", text, "expected a JSON object")
    return value


_ENCODERS: Dict[str, Callable[[Any], Any]] = {
    "timestamp": format_timestamp,
    "headers": _dump_headers,
}

_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "timestamp": parse_timestamp,
    "headers": _load_headers,
}


def columns_for(record_cls: type) -> Tuple[Column, ...]:
    try:
        return COLUMNS[record_cls]
    except KeyError:
        raise TypeError(f"not a web index record class: {record_cls!r}") from None


def schema_for(record_cls: type) -> pa.Schema:
    return pa.schema([c.field() for c in columns_for(record_cls)])


def to_table(record_cls: Type[R], records: Sequence[R]) -> pa.Table:
    """Convert records of one class into a table, preserving order."""

    columns = columns_for(record_cls)
    data: Dict[str, List[Any]] = {c.name: [] for c in columns}
    for record in records:
        if not isinstance(record, record_cls):
            raise TypeError(f"expected {record_cls.__name__}, got {type(record).__name__}")
        for c in columns:
            value = getattr(record, c.name)
            encode = _ENCODERS.get(c.name)
            data[c.name].append(encode(value) if encode is not None and value is not None else value)
    return pa.Table.from_pydict(data, schema=schema_for(record_cls))


def check_schema(record_cls: type, table: pa.Table) -> None:
    """Raise `SchemaMismatch` unless ``table`` carries every column of ``record_cls``."""

    names = set(table.schema.names)
    for c in columns_for(record_cls):
        if c.name not in names:
            raise SchemaMismatch(f"missing column {c.name!r} for {record_cls.__name__}", column=c.name)
        actual = table.schema.field(c.name).type
        if not c.accepts(actual):
            raise SchemaMismatch(
                f"column {c.name!r} has type {actual}, expected {c.type}",
                column=c.name,
            )
        if not c.nullable and table.column(c.name).null_count:
            raise SchemaMismatch(f"null values in required column {c.name!r}", column=c.name)


def from_table(record_cls: Type[R], table: pa.Table) -> List[R]:
    """Convert a table back into records, preserving row order."""

    check_schema(record_cls, table)
    columns = columns_for(record_cls)
    values = {c.name: table.column(c.name).to_pylist() for c in columns}

    out: List[R] = []
    for i in range(table.num_rows):
        kwargs: Dict[str, Any] = {}
        for c in columns:
            value = values[c.name][i]
            decode = _DECODERS.get(c.name)
            if decode is not None and value is not None:
                value = decode(value)
            kwargs[c.name] = value
        out.append(record_cls(**kwargs))
    return out


def records_to_table(record_type: RecordType, records: Sequence[Any]) -> pa.Table:
    return to_table(record_type.record_class, records)


def table_to_records(record_type: RecordType, table: pa.Table) -> List[Any]:
    return from_table(record_type.record_class, table)
