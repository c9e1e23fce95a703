"""Web Index: an append-only store of web crawl records.

Records are laid out as parquet files partitioned by record type, month and
registered domain. Uncoordinated writers each upload their own physical
file per partition; readers locate records through `query` URIs.
"""

from .domain import Extractor
from .errors import (
    InvalidRecordType,
    InvalidUrl,
    MalformedField,
    MalformedHeaders,
    MalformedTimestamp,
    MalformedUrl,
    NoHost,
    NoRegisteredDomain,
    PartitionMismatch,
    SchemaMismatch,
    UnrecognizedQuery,
    WebIndexError,
)
from .insert import InsertionRequest, PreparedBatch, persist, prepare, prepare_partial
from .path import LogicalPath, PhysicalPath, to_logical_path, to_physical_path
from .query import DeterministicQuery, InsertionQuery, SimpleQuery, TimeBoundedQuery, decode, encode
from .records import (
    DataType,
    GetResponse,
    HeadResponse,
    Metadata,
    MetadataType,
    Persisted,
    RecordType,
    RequestID,
    wrap,
    wrap_with_id,
)
from .store import ParquetStore
from .table import from_table, to_table

__all__ = [
    "DataType",
    "DeterministicQuery",
    "Extractor",
    "GetResponse",
    "HeadResponse",
    "InsertionQuery",
    "InsertionRequest",
    "InvalidRecordType",
    "InvalidUrl",
    "LogicalPath",
    "MalformedField",
    "MalformedHeaders",
    "MalformedTimestamp",
    "MalformedUrl",
    "Metadata",
    "MetadataType",
    "NoHost",
    "NoRegisteredDomain",
    "ParquetStore",
    "PartitionMismatch",
    "Persisted",
    "PhysicalPath",
    "PreparedBatch",
    "RecordType",
    "RequestID",
    "SchemaMismatch",
    "SimpleQuery",
    "TimeBoundedQuery",
    "UnrecognizedQuery",
    "WebIndexError",
    "decode",
    "encode",
    "from_table",
    "persist",
    "prepare",
    "prepare_partial",
    "to_logical_path",
    "to_physical_path",
    "to_table",
    "wrap",
    "wrap_with_id",
]
