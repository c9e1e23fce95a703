import urllib.parse
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from web_index.errors import InvalidRecordType, MalformedField, UnrecognizedQuery
from web_index.query import (
    DeterministicQuery,
    InsertionQuery,
    SimpleQuery,
    TimeBoundedQuery,
    decode,
    encode,
)
from web_index.records import DataType, RecordType, RequestID
from web_index.timestamps import parse_timestamp

T0 = datetime(2024, 1, 2, 12, 13, 14, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 1, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _default_label(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WEB_INDEX_LABEL", raising=False)


@pytest.mark.parametrize(
    "query, dir_",
    [
        (InsertionQuery.head("https://thema.ai/foobar", datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc)), "head/2024/01"),
        (InsertionQuery.head_metadata("https://thema.ai/foobar", datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc)), "head-metadata/2024/01"),
        (InsertionQuery.get("https://thema.ai/foobar", datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc)), "get/2024/01"),
        (InsertionQuery.get_metadata("https://thema.ai/foobar", datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc)), "get-metadata/2024/01"),
        (InsertionQuery.get("https://thema.ai/", datetime(2023, 11, 30, 23, 59, 59, tzinfo=timezone.utc)), "get/2023/11"),
    ],
)
def test_dir_constructed_correctly(query: InsertionQuery, dir_: str) -> None:
    assert query.dir() == dir_


def test_dir_uses_utc_month() -> None:
    local = timezone(timedelta(hours=2))
    query = InsertionQuery.get("https://thema.ai", datetime(2024, 2, 1, 1, 0, 0, tzinfo=local))

    assert query.dir() == "get/2024/01"


def test_path_composed_of_dir_uuid_and_suffix() -> None:
    query = InsertionQuery.get("https://thema.ai", datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc))

    path = query.path()
    marker = path.split(".")[-2]
    uuid.UUID(marker)

    assert path.replace(marker, "UUID") == "get/2024/01/thema.ai.UUID.parquet"


def test_compute_path_uses_given_extractor(extractor) -> None:
    query = InsertionQuery.get("https://thema.ai", T0)

    assert query.compute_path(extractor) != query.compute_path(extractor)


def test_for_record_only_accepts_data_types(make_get) -> None:
    record = make_get("https://thema.ai/page", timestamp=T0)

    query = InsertionQuery.for_record(RecordType.GET, record)
    assert (query.url, query.timestamp) == ("https://thema.ai/page", T0)
    assert InsertionQuery.for_record(DataType.HEAD, record).record_type is RecordType.HEAD

    with pytest.raises(InvalidRecordType):
        InsertionQuery.for_record(RecordType.GET_METADATA, record)


def test_deterministic_query_encodes_canonically() -> None:
    rid = RequestID.new()
    query = DeterministicQuery(RecordType.GET, "https://thema.ai/", T0, rid)

    expected = (
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F"
        "&timestamp=2024-01-02T12%3A13%3A14Z"
        f"&request_id=request%3A{str(rid)[len('request:'):]}"
    )
    assert encode(query) == expected


def test_simple_query_encodes_canonically() -> None:
    query = SimpleQuery(RecordType.HEAD, "https://thema.ai", 3, True)

    assert encode(query) == "thema://web-index/head?url=https%3A%2F%2Fthema.ai%2F&calibre=3&calibre_strict=true"


def test_encode_uses_label(monkeypatch: pytest.MonkeyPatch) -> None:
    query = SimpleQuery(RecordType.GET, "https://thema.ai/")

    assert encode(query, "archive").startswith("thema://archive/get?")
    monkeypatch.setenv("WEB_INDEX_LABEL", "from-env")
    assert encode(query).startswith("thema://from-env/get?")


_RID = RequestID.new()

_QUERIES = [
    DeterministicQuery(t, "https://thema.ai/a?b=c&d=e%20f", T0, _RID) for t in RecordType
] + [
    SimpleQuery(RecordType.GET, "http://foo.bar.thema.ai/x", 0, False),
    SimpleQuery(RecordType.HEAD, "https://local.nhs.uk/", 255, True),
    TimeBoundedQuery(RecordType.GET, "https://thema.ai/", T0, T1, 2, False),
    TimeBoundedQuery(RecordType.HEAD, "https://thema.ai/+plus", T0, T0, 7, True),
]


@pytest.mark.parametrize("query", _QUERIES, ids=lambda q: type(q).__name__)
def test_query_round_trips(query) -> None:
    decoded = decode(encode(query))

    assert type(decoded) is type(query)
    assert decoded == query


def test_encoding_is_injective_per_shape() -> None:
    uris = {encode(q) for q in _QUERIES}
    assert len(uris) == len(_QUERIES)


def test_query_timestamps_have_second_precision() -> None:
    precise = datetime(2024, 1, 2, 12, 13, 14, 123456, tzinfo=timezone.utc)
    query = DeterministicQuery(RecordType.GET, "https://thema.ai/", precise, RequestID.new())

    assert query.timestamp == T0
    assert decode(encode(query)) == query


def test_request_id_wins_over_calibre_params() -> None:
    rid = RequestID.new()
    uri = encode(DeterministicQuery(RecordType.GET, "https://thema.ai/", T0, rid)) + "&calibre=1&calibre_strict=true"

    decoded = decode(uri)

    assert isinstance(decoded, DeterministicQuery)
    assert decoded.request_id == rid


def test_time_bounds_decode_as_time_bounded() -> None:
    simple = encode(SimpleQuery(RecordType.GET, "https://thema.ai/", 1, False))
    bounds = urllib.parse.urlencode({"not_before": "2024-01-02T12:13:14Z", "not_after": "2024-03-01T00:00:00Z"})

    decoded = decode(f"{simple}&{bounds}")

    assert decoded == TimeBoundedQuery(RecordType.GET, "https://thema.ai/", T0, T1, 1, False)


def test_half_window_falls_back_to_simple() -> None:
    simple = encode(SimpleQuery(RecordType.GET, "https://thema.ai/", 1, False))

    decoded = decode(simple + "&not_before=2024-01-02T12%3A13%3A14Z")

    assert decoded == SimpleQuery(RecordType.GET, "https://thema.ai/", 1, False)


def test_authority_is_ignored() -> None:
    query = SimpleQuery(RecordType.GET, "https://thema.ai/")

    assert decode(encode(query, "somewhere-else")) == query


@pytest.mark.parametrize(
    "uri",
    [
        "",
        "https://web-index/get?url=https%3A%2F%2Fthema.ai%2F&calibre=0&calibre_strict=true",
        "thema://web-index/post?url=https%3A%2F%2Fthema.ai%2F&calibre=0&calibre_strict=true",
        "thema://web-index/get?calibre=0&calibre_strict=true",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&calibre=256&calibre_strict=true",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&calibre=-1&calibre_strict=true",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&calibre=0&calibre_strict=yes",
        "thema://web-index/get?url=thema.ai&calibre=0&calibre_strict=true",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&calibre=0&calibre=1&calibre_strict=true",
        "thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F&timestamp=2024-01-02T12%3A13%3A14Z&request_id=nope",
    ],
)
def test_unrecognized_queries_rejected(uri: str) -> None:
    with pytest.raises(UnrecognizedQuery):
        decode(uri)


def test_unrecognized_query_reports_each_shape() -> None:
    with pytest.raises(UnrecognizedQuery) as exc:
        decode("thema://web-index/get?url=https%3A%2F%2Fthema.ai%2F")

    assert set(exc.value.reasons) == {"DeterministicQuery", "TimeBoundedQuery", "SimpleQuery"}


@pytest.mark.parametrize("strict, calibre, accepted", [(True, 2, True), (True, 3, False), (False, 3, True), (False, 1, False)])
def test_calibre_modes(strict: bool, calibre: int, accepted: bool) -> None:
    query = SimpleQuery(RecordType.GET, "https://thema.ai/", 2, strict)

    assert query.accepts_calibre(calibre) is accepted


def test_calibre_out_of_range_rejected() -> None:
    with pytest.raises(MalformedField):
        SimpleQuery(RecordType.GET, "https://thema.ai/", 256)


def test_time_window_is_half_open() -> None:
    query = TimeBoundedQuery(RecordType.GET, "https://thema.ai/", T0, T1)

    assert query.contains(T0)
    assert not query.contains(T1)


@pytest.mark.parametrize(
    "not_before, not_after, months",
    [
        ("2023-12-15T00:00:00Z", "2024-02-01T00:00:00Z", [(2023, 12), (2024, 1)]),
        ("2023-12-15T00:00:00Z", "2024-02-01T00:00:01Z", [(2023, 12), (2024, 1), (2024, 2)]),
        ("2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z", []),
        ("2024-05-01T00:00:00Z", "2024-01-01T00:00:00Z", []),
    ],
)
def test_time_window_months(not_before: str, not_after: str, months) -> None:
    query = TimeBoundedQuery(RecordType.GET, "https://thema.ai/", parse_timestamp(not_before), parse_timestamp(not_after))

    assert query.months() == months
    assert query.partition_dirs() == [f"get/{y}/{m:02d}" for y, m in months]
