"""Web index command line.

Examples:
    python -m web_index.cli --help
    web-index domain https://mirrors.tuna.tsinghua.edu.cn/
    web-index path --type get --url https://thema.ai/ --timestamp 2024-01-01T12:13:14Z
    web-index query decode 'thema://web-index/get?url=...&calibre=0&calibre_strict=true'
    web-index insert --type get --input responses.jsonl
    web-index fetch 'thema://web-index/get?url=...&timestamp=...&request_id=...'
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from web_index import config
from web_index.domain import Extractor
from web_index.errors import MalformedField, WebIndexError
from web_index.insert import InsertionRequest, persist
from web_index.query import DeterministicQuery, InsertionQuery, SimpleQuery, TimeBoundedQuery, decode, encode
from web_index.records import GetResponse, HeadResponse, Metadata, RecordType
from web_index.retrieve import download
from web_index.store import ParquetStore
from web_index.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

_RECORD_TYPES = [t.value for t in RecordType]


def _record_to_json(record: object) -> Dict[str, Any]:
    if isinstance(record, Metadata):
        return {
            "state": record.state,
            "url": record.url,
            "logs": record.logs,
            "traceback": record.traceback,
            "run_time": record.run_time,
        }
    out: Dict[str, Any] = {
        "url": record.url,
        "request_url": record.request_url,
        "status_code": record.status_code,
        "headers": record.headers,
        "timestamp": format_timestamp(record.timestamp),
        "retry_attempt": record.retry_attempt,
        "is_final": record.is_final,
        "fetcher_name": record.fetcher_name,
        "fetcher_version": record.fetcher_version,
        "fetcher_calibre": record.fetcher_calibre,
    }
    if isinstance(record, GetResponse):
        out["data_base64"] = base64.b64encode(record.data).decode("ascii") if record.data is not None else None
    return out


def _record_from_json(record_type: RecordType, obj: Dict[str, Any]) -> object:
    if record_type.is_metadata():
        return Metadata(
            state=str(obj["state"]),
            url=str(obj["url"]),
            logs=obj.get("logs"),
            traceback=obj.get("traceback"),
            run_time=obj.get("run_time"),
        )
    fields = dict(
        url=str(obj["url"]),
        request_url=str(obj.get("request_url") or obj["url"]),
        status_code=int(obj["status_code"]),
        headers=obj.get("headers"),
        timestamp=parse_timestamp(obj["timestamp"]),
        retry_attempt=int(obj.get("retry_attempt", 0)),
        is_final=bool(obj.get("is_final", True)),
        fetcher_name=str(obj["fetcher_name"]),
        fetcher_version=str(obj["fetcher_version"]),
        fetcher_calibre=int(obj.get("fetcher_calibre", 0)),
    )
    if record_type is RecordType.HEAD:
        return HeadResponse(**fields)
    raw = obj.get("data_base64")
    return GetResponse(data=base64.b64decode(raw) if raw is not None else None, **fields)


def _query_to_json(query: object) -> Dict[str, Any]:
    out: Dict[str, Any] = {"shape": type(query).__name__}
    for key, value in query.params():
        out[key] = value
    out["record_type"] = query.record_type.value
    return out


def _store(args: argparse.Namespace) -> ParquetStore:
    return ParquetStore(Path(args.root) if args.root else None)


def _cmd_domain(args: argparse.Namespace) -> int:
    extractor = Extractor()
    rc = 0
    for url in args.urls:
        try:
            sys.stdout.write(extractor.domain(url) + "\n")
        except WebIndexError as e:
            sys.stderr.write(f"{url}: {e}\n")
            rc = 1
    return rc


def _cmd_path(args: argparse.Namespace) -> int:
    query = InsertionQuery(RecordType(args.type), args.url, parse_timestamp(args.timestamp))
    extractor = Extractor()
    if args.physical:
        sys.stdout.write(query.compute_path(extractor) + "\n")
    else:
        sys.stdout.write(str(query.logical_path(extractor)) + "\n")
    return 0


def _cmd_query_encode(args: argparse.Namespace) -> int:
    record_type = RecordType(args.type)
    if args.request_id:
        if not args.timestamp:
            raise SystemExit("--request-id requires --timestamp")
        query = DeterministicQuery(record_type, args.url, parse_timestamp(args.timestamp), args.request_id)
    elif args.not_before or args.not_after:
        if not (args.not_before and args.not_after):
            raise SystemExit("--not-before and --not-after must be given together")
        query = TimeBoundedQuery(
            record_type,
            args.url,
            parse_timestamp(args.not_before, "not_before"),
            parse_timestamp(args.not_after, "not_after"),
            int(args.calibre),
            bool(args.strict),
        )
    else:
        query = SimpleQuery(record_type, args.url, int(args.calibre), bool(args.strict))
    sys.stdout.write(encode(query, args.label) + "\n")
    return 0


def _cmd_query_decode(args: argparse.Namespace) -> int:
    for text in args.uris:
        sys.stdout.write(json.dumps(_query_to_json(decode(text)), ensure_ascii=False) + "\n")
    return 0


def _cmd_insert(args: argparse.Namespace) -> int:
    record_type = RecordType(args.type)
    now = datetime.now(timezone.utc)
    requests: List[InsertionRequest] = []
    with open(args.input, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
                record = _record_from_json(record_type, obj)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise MalformedField(f"{args.input}:{lineno}", line, f"{type(e).__name__}: {e}") from e
            if record_type.is_data():
                query = InsertionQuery.for_record(record_type, record)
            else:
                ts = parse_timestamp(obj["inserted_at"], "inserted_at") if obj.get("inserted_at") else now
                query = InsertionQuery(record_type, record.url, ts)
            requests.append(InsertionRequest(query, [record]))

    retrievals = persist(requests, _store(args), Extractor())
    for query in retrievals:
        sys.stdout.write(encode(query, args.label) + "\n")
    logger.info("inserted %d records", len(retrievals))
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    queries = [decode(text) for text in args.uris]
    rc = 0
    for text, found in zip(args.uris, download(queries, _store(args), Extractor())):
        if found is None:
            sys.stderr.write(f"not found: {text}\n")
            rc = 1
            continue
        out = _record_to_json(found.data)
        out["request_id"] = str(found.request_id)
        sys.stdout.write(json.dumps(out, ensure_ascii=False) + "\n")
    return rc


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="web-index", description="Web index: store and query web crawl records")
    ap.add_argument("--verbose", action="store_true", default=False, help="Enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_domain = sub.add_parser("domain", help="Print the registered domain of each URL")
    ap_domain.add_argument("urls", nargs="+")
    ap_domain.set_defaults(func=_cmd_domain)

    ap_path = sub.add_parser("path", help="Print the storage path for an insertion")
    ap_path.add_argument("--type", choices=_RECORD_TYPES, required=True)
    ap_path.add_argument("--url", required=True)
    ap_path.add_argument("--timestamp", required=True, help="RFC3339 UTC, e.g. 2024-01-01T12:13:14Z")
    ap_path.add_argument("--physical", action="store_true", default=False, help="Add a fresh deconfliction marker")
    ap_path.set_defaults(func=_cmd_path)

    ap_query = sub.add_parser("query", help="Encode or decode query URIs")
    sub_query = ap_query.add_subparsers(dest="query_cmd", required=True)

    ap_encode = sub_query.add_parser("encode", help="Build a query URI")
    ap_encode.add_argument("--type", choices=_RECORD_TYPES, required=True)
    ap_encode.add_argument("--url", required=True)
    ap_encode.add_argument("--timestamp", default=None)
    ap_encode.add_argument("--request-id", default=None)
    ap_encode.add_argument("--not-before", default=None)
    ap_encode.add_argument("--not-after", default=None)
    ap_encode.add_argument("--calibre", type=int, default=0)
    ap_encode.add_argument("--strict", action="store_true", default=False, help="Match calibre exactly")
    ap_encode.add_argument("--label", default=None, help=f"URI authority (default: {config.DEFAULT_LABEL})")
    ap_encode.set_defaults(func=_cmd_query_encode)

    ap_decode = sub_query.add_parser("decode", help="Decode query URIs to JSON")
    ap_decode.add_argument("uris", nargs="+")
    ap_decode.set_defaults(func=_cmd_query_decode)

    ap_insert = sub.add_parser("insert", help="Insert JSON-lines records into the local store")
    ap_insert.add_argument("--type", choices=_RECORD_TYPES, required=True)
    ap_insert.add_argument("--input", required=True, help="JSON lines, one record per line")
    ap_insert.add_argument("--root", default=None, help="Store root (default: $WEB_INDEX_ROOT or state/web_index)")
    ap_insert.add_argument("--label", default=None)
    ap_insert.set_defaults(func=_cmd_insert)

    ap_fetch = sub.add_parser("fetch", help="Fetch records for query URIs from the local store")
    ap_fetch.add_argument("uris", nargs="+")
    ap_fetch.add_argument("--root", default=None)
    ap_fetch.set_defaults(func=_cmd_fetch)

    ns = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        return int(ns.func(ns))
    except WebIndexError as e:
        sys.stderr.write(f"error: {e}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
