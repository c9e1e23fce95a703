"""Insertion batching.

Insertion requests that resolve to the same logical path (same record type,
month and registered domain) are merged into one batch. Every record in a
batch is stamped with one shared `RequestID`, and the batch becomes one
table and, once uploaded, one physical file. A `DeterministicQuery` per
record is returned so any single record can be fetched back later. For
GET/HEAD responses that query carries the record's own url and timestamp,
which must land in the same partition as the request's insertion query;
otherwise `PartitionMismatch` is raised.

`prepare` is fail-fast: if any request's path cannot be resolved, nothing
is prepared. `prepare_partial` is the separate entry point for callers who
want the resolvable requests batched and the failures reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

import pyarrow as pa

from .domain import Extractor
from .errors import PartitionMismatch, WebIndexError
from .path import LogicalPath, to_logical_path
from .query import DeterministicQuery, InsertionQuery
from .records import Persisted, RecordType, RequestID, check_record_class, wrap_with_id
from .table import to_table

if TYPE_CHECKING:
    from .store import ParquetStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class InsertionRequest(Generic[T]):
    query: InsertionQuery
    data: Sequence[T]


@dataclass(frozen=True)
class PreparedBatch(Generic[T]):
    record_type: RecordType
    path: LogicalPath
    records: List[Persisted[T]]
    retrievals: List[DeterministicQuery]

    @property
    def request_id(self) -> RequestID:
        return self.records[0].request_id

    def to_table(self) -> pa.Table:
        return to_table(self.record_type.record_class, [p.data for p in self.records])


def _resolve(request: InsertionRequest[T], extractor: Extractor) -> LogicalPath:
    query = request.query
    check_record_class(query.record_type, request.data)
    path = to_logical_path(query, extractor)
    if not query.record_type.is_data():
        return path
    for record in request.data:
        own = InsertionQuery.for_record(query.record_type, record)
        if (own.url, own.dir()) == (query.url, query.dir()):
            continue
        record_path = to_logical_path(own, extractor)
        if record_path != path:
            raise PartitionMismatch(str(path), str(record_path), own.url)
    return path


def _retrieval(query: InsertionQuery, record: object, request_id: RequestID) -> DeterministicQuery:
    if query.record_type.is_data():
        return InsertionQuery.for_record(query.record_type, record).retrieval(request_id)
    return query.retrieval(request_id)


def _batch(resolved: Sequence[Tuple[InsertionRequest[T], LogicalPath]]) -> List[PreparedBatch[T]]:
    groups: Dict[LogicalPath, List[Tuple[InsertionQuery, T]]] = {}
    types: Dict[LogicalPath, RecordType] = {}
    for request, path in resolved:
        types.setdefault(path, request.query.record_type)
        groups.setdefault(path, []).extend((request.query, record) for record in request.data)

    batches: List[PreparedBatch[T]] = []
    for path, items in groups.items():
        if not items:
            continue
        request_id = RequestID.new()
        batches.append(
            PreparedBatch(
                record_type=types[path],
                path=path,
                records=wrap_with_id([record for _, record in items], request_id),
                retrievals=[_retrieval(query, record, request_id) for query, record in items],
            )
        )
        logger.debug("prepared batch path=%s records=%d request_id=%s", path, len(items), request_id)
    return batches


def prepare(
    requests: Sequence[InsertionRequest[T]],
    extractor: Optional[Extractor] = None,
) -> List[PreparedBatch[T]]:
    """Group requests by logical path and stamp each group with one RequestID."""

    extractor = extractor if extractor is not None else Extractor()
    resolved = [(request, _resolve(request, extractor)) for request in requests]
    return _batch(resolved)


def prepare_partial(
    requests: Sequence[InsertionRequest[T]],
    extractor: Optional[Extractor] = None,
) -> Tuple[List[PreparedBatch[T]], List[Tuple[InsertionRequest[T], WebIndexError]]]:
    """Like `prepare`, but requests whose path cannot be resolved, or whose
    records do not fit that path, are returned as failures."""

    extractor = extractor if extractor is not None else Extractor()
    resolved: List[Tuple[InsertionRequest[T], LogicalPath]] = []
    failures: List[Tuple[InsertionRequest[T], WebIndexError]] = []
    for request in requests:
        try:
            resolved.append((request, _resolve(request, extractor)))
        except WebIndexError as e:
            failures.append((request, e))
    if failures:
        logger.info("prepare_partial skipped %d of %d requests", len(failures), len(requests))
    return _batch(resolved), failures


def persist(
    requests: Sequence[InsertionRequest[T]],
    store: "ParquetStore",
    extractor: Optional[Extractor] = None,
) -> List[DeterministicQuery]:
    """Prepare and upload requests; returns one retrieval query per record."""

    batches = prepare(requests, extractor)
    # Build every table before the first upload so a bad record uploads nothing.
    tables = [(batch, batch.to_table()) for batch in batches]
    out: List[DeterministicQuery] = []
    for batch, table in tables:
        store.upload(table, batch.path, request_id=batch.request_id)
        out.extend(batch.retrievals)
    return out
