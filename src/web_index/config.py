"""Environment-driven settings.

  WEB_INDEX_ROOT                 local store root (default: state/web_index)
  WEB_INDEX_LABEL                authority used in query URIs (default: web-index)
  WEB_INDEX_PARQUET_COMPRESSION  parquet codec (default: zstd)
  WEB_INDEX_DUCKDB_THREADS       duckdb scan threads (default: CPU count)
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ROOT = "state/web_index"
DEFAULT_LABEL = "web-index"
DEFAULT_COMPRESSION = "zstd"


def index_root() -> Path:
    return Path(os.environ.get("WEB_INDEX_ROOT") or DEFAULT_ROOT).expanduser().resolve()


def index_label() -> str:
    return (os.environ.get("WEB_INDEX_LABEL") or "").strip() or DEFAULT_LABEL


def parquet_compression() -> str:
    return (os.environ.get("WEB_INDEX_PARQUET_COMPRESSION") or "").strip() or DEFAULT_COMPRESSION


def duckdb_threads() -> int:
    v = (os.environ.get("WEB_INDEX_DUCKDB_THREADS") or "").strip()
    if v.isdigit():
        return max(1, int(v))
    return max(1, int(os.cpu_count() or 4))
