"""Logical and physical storage paths.

A logical path names a partition: ``{type}/{year}/{month:02}/{domain}.parquet``.
Many writers may target the same logical path at once, so nothing is ever
stored there directly. Each upload gets a physical path that adds a fresh
random marker, ``{type}/{year}/{month:02}/{domain}.{marker}.parquet``, and
becomes its own object in the store.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .domain import Extractor
    from .query import InsertionQuery

logger = logging.getLogger(__name__)

STORAGE_SUFFIX = "parquet"


@dataclass(frozen=True)
class LogicalPath:
    """Where a record would be stored, ignoring deconfliction."""

    dir: str
    filename: str
    suffix: str = STORAGE_SUFFIX

    def __str__(self) -> str:
        return f"{self.dir}/{self.filename}.{self.suffix}"


@dataclass(frozen=True)
class PhysicalPath:
    """Where a record is actually stored, including the deconfliction marker."""

    dir: str
    filename: str
    suffix: str
    marker: str

    @property
    def logical(self) -> LogicalPath:
        return LogicalPath(self.dir, self.filename, self.suffix)

    def __str__(self) -> str:
        return f"{self.dir}/{self.filename}.{self.marker}.{self.suffix}"


def to_logical_path(query: "InsertionQuery", extractor: "Extractor") -> LogicalPath:
    """Compute the partition for an insertion.

    Errors from the extractor propagate unchanged. No I/O is performed.
    """

    domain = extractor.domain(query.url)
    path = LogicalPath(query.dir(), domain, STORAGE_SUFFIX)
    logger.debug("logical path url=%s path=%s", query.url, path)
    return path


def new_marker() -> str:
    return str(uuid.uuid4())


def to_physical_path(logical: LogicalPath, marker: Optional[str] = None) -> PhysicalPath:
    """Materialise a physical path; a new marker is generated unless one is given."""

    if marker is None:
        marker = new_marker()
    return PhysicalPath(logical.dir, logical.filename, logical.suffix, marker)


def parse_physical_path(text: str) -> PhysicalPath:
    """Inverse of ``str(PhysicalPath)``.

    The marker is the second-to-last dot-separated part of the file name;
    the domain before it may itself contain dots.
    """

    dir_, sep, name = str(text).rpartition("/")
    if not sep or not dir_:
        raise ValueError(f"not a physical path: {text!r}")
    stem, dot, suffix = name.rpartition(".")
    filename, dot2, marker = stem.rpartition(".")
    if not dot or not dot2 or not filename or not marker or not suffix:
        raise ValueError(f"not a physical path: {text!r}")
    return PhysicalPath(dir_, filename, suffix, marker)
