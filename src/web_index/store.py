"""Local parquet object store.

Uploads follow the web index layout under a root directory. Each upload is
written to a freshly allocated physical path and published with a hard
link, so a path is written at most once and a concurrent writer can never
replace another writer's file. The batch RequestID is kept in the parquet
key/value metadata; the column set stays exactly the record schema.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from . import config
from .path import LogicalPath, PhysicalPath, parse_physical_path, to_physical_path
from .records import RequestID

logger = logging.getLogger(__name__)

REQUEST_ID_KEY = b"web_index.request_id"


@dataclass(frozen=True)
class UploadResult:
    path: PhysicalPath
    rows: int
    size_bytes: int
    sha256: str


class ParquetStore:
    def __init__(self, root: Optional[Path] = None, *, compression: Optional[str] = None) -> None:
        self.root = Path(root).expanduser().resolve() if root is not None else config.index_root()
        self.compression = compression or config.parquet_compression()

    def local_path(self, path: PhysicalPath) -> Path:
        return self.root / str(path)

    def upload(
        self,
        table: pa.Table,
        logical: LogicalPath,
        *,
        request_id: Optional[RequestID] = None,
    ) -> UploadResult:
        """Serialise ``table`` and store it under a new physical path for ``logical``."""

        if request_id is not None:
            meta = dict(table.schema.metadata or {})
            meta[REQUEST_ID_KEY] = str(request_id).encode("utf-8")
            table = table.replace_schema_metadata(meta)

        sink = pa.BufferOutputStream()
        pq.write_table(table, sink, compression=self.compression)
        payload = sink.getvalue().to_pybytes()
        digest = hashlib.sha256(payload).hexdigest()

        # Allocate the marker only now, right before the object is written.
        physical = to_physical_path(logical)
        target = self.local_path(physical)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        try:
            with open(tmp, "xb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            # Raises FileExistsError instead of overwriting.
            os.link(tmp, target)
        finally:
            tmp.unlink(missing_ok=True)

        logger.info(
            "uploaded path=%s rows=%d bytes=%d sha256=%s",
            physical,
            table.num_rows,
            len(payload),
            digest,
        )
        return UploadResult(path=physical, rows=table.num_rows, size_bytes=len(payload), sha256=digest)

    def list_physical(self, logical: LogicalPath) -> List[PhysicalPath]:
        """Every physical file stored for ``logical``, in name order."""

        d = self.root / logical.dir
        if not d.is_dir():
            return []
        out: List[PhysicalPath] = []
        for p in sorted(d.glob(f"{logical.filename}.*.{logical.suffix}")):
            try:
                physical = parse_physical_path(f"{logical.dir}/{p.name}")
            except ValueError:
                continue
            # "foo.co.*" also globs "foo.co.uk.<marker>"; keep exact domains only.
            if physical.logical == logical:
                out.append(physical)
        return out

    def request_id(self, path: PhysicalPath) -> Optional[RequestID]:
        meta = pq.read_schema(self.local_path(path)).metadata or {}
        raw = meta.get(REQUEST_ID_KEY)
        if raw is None:
            return None
        return RequestID.parse(raw.decode("utf-8"))

    def read_table(self, path: PhysicalPath) -> pa.Table:
        return pq.read_table(self.local_path(path))
