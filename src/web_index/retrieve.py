"""Retrieval from a `ParquetStore`.

Queries only narrow the files to scan by partition: record type, month and
registered domain. Within those files duckdb selects the rows for the
query's url; the remaining predicates (timestamp, calibre, time window) are
applied to the decoded records.

  - Deterministic queries read only files whose RequestID matches.
    GET/HEAD rows must also carry the query timestamp, so insertion queries
    for data records should come from `InsertionQuery.for_record`.
  - Simple and TimeBounded queries filter on fetcher calibre, so they apply
    to GET/HEAD data only and raise `InvalidRecordType` for metadata types.
    They resolve to the most recent matching record.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Sequence

import pyarrow as pa

from . import config
from .domain import Extractor
from .errors import NoHost, NoRegisteredDomain
from .path import STORAGE_SUFFIX, LogicalPath, PhysicalPath
from .query import DeterministicQuery, Query, TimeBoundedQuery
from .records import DataType, Persisted, RecordType
from .store import ParquetStore
from .table import from_table

logger = logging.getLogger(__name__)


def _require_duckdb() -> "object":
    try:
        import duckdb  # type: ignore

        return duckdb
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "duckdb is required for web index retrieval. "
            "Install with: pip install -e ."
        ) from e


def _scan_dirs(store: ParquetStore, query: Query) -> List[str]:
    if isinstance(query, (DeterministicQuery, TimeBoundedQuery)):
        return query.partition_dirs()
    base = store.root / query.record_type.dir
    if not base.is_dir():
        return []
    return [
        f"{query.record_type.dir}/{p.parent.name}/{p.name}"
        for p in sorted(base.glob("[0-9]*/[0-9][0-9]"))
        if p.is_dir()
    ]


def _candidate_files(store: ParquetStore, query: Query, domain: str) -> List[PhysicalPath]:
    out: List[PhysicalPath] = []
    for d in _scan_dirs(store, query):
        out.extend(store.list_physical(LogicalPath(d, domain, STORAGE_SUFFIX)))
    if isinstance(query, DeterministicQuery):
        out = [p for p in out if store.request_id(p) == query.request_id]
    return out


def _matches(query: Query, record: object) -> bool:
    if isinstance(query, DeterministicQuery):
        if query.record_type.is_metadata():
            return True
        return getattr(record, "timestamp") == query.timestamp
    if not query.accepts_calibre(getattr(record, "fetcher_calibre")):
        return False
    if isinstance(query, TimeBoundedQuery):
        return query.contains(getattr(record, "timestamp"))
    return True


def _iter_matches(store: ParquetStore, query: Query, extractor: Extractor) -> Iterator[Persisted]:
    if not isinstance(query, DeterministicQuery):
        DataType.from_record_type(query.record_type)

    domain = extractor.domain(query.url)
    files = _candidate_files(store, query, domain)
    if not files:
        return

    record_cls = query.record_type.record_class
    duckdb = _require_duckdb()
    con = duckdb.connect(database=":memory:")
    try:
        con.execute(f"PRAGMA threads={config.duckdb_threads()}")
        for physical in files:
            result = con.execute(
                "SELECT * FROM read_parquet(?) WHERE url = ?",
                [str(store.local_path(physical)), query.url],
            ).arrow()
            # Newer duckdb releases hand back a stream reader instead of a table.
            table = result.read_all() if isinstance(result, pa.RecordBatchReader) else result
            request_id = store.request_id(physical)
            for record in from_table(record_cls, table):
                if _matches(query, record):
                    yield Persisted(record, request_id)
    finally:
        con.close()


def _resolve(store: ParquetStore, query: Query, extractor: Extractor) -> Optional[Persisted]:
    if isinstance(query, DeterministicQuery):
        return next(_iter_matches(store, query, extractor), None)
    best: Optional[Persisted] = None
    for persisted in _iter_matches(store, query, extractor):
        if best is None or persisted.data.timestamp > best.data.timestamp:
            best = persisted
    return best


def exists(
    queries: Sequence[Query],
    store: ParquetStore,
    extractor: Optional[Extractor] = None,
) -> List[Optional[bool]]:
    """Whether each query has a stored match; None when its partition cannot be resolved."""

    extractor = extractor if extractor is not None else Extractor()
    out: List[Optional[bool]] = []
    for query in queries:
        try:
            out.append(next(_iter_matches(store, query, extractor), None) is not None)
        except (NoHost, NoRegisteredDomain) as e:
            logger.info("cannot resolve partition for %s: %s", query.url, e)
            out.append(None)
    return out


def download(
    queries: Sequence[Query],
    store: ParquetStore,
    extractor: Optional[Extractor] = None,
) -> List[Optional[Persisted]]:
    """Fetch one record per query, or None when nothing matches."""

    extractor = extractor if extractor is not None else Extractor()
    out: List[Optional[Persisted]] = []
    for query in queries:
        try:
            found = _resolve(store, query, extractor)
        except (NoHost, NoRegisteredDomain) as e:
            logger.info("cannot resolve partition for %s: %s", query.url, e)
            found = None
        out.append(found)
    logger.info("downloaded %d/%d queries", sum(1 for f in out if f is not None), len(out))
    return out


def retrieval_query(record_type: RecordType, persisted: Persisted) -> DeterministicQuery:
    """The deterministic query naming a downloaded GET/HEAD record."""

    DataType.from_record_type(record_type)
    record = persisted.data
    return DeterministicQuery(record_type, record.url, record.timestamp, persisted.request_id)
