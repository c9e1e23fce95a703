"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from web_index.domain import Extractor
from web_index.records import GetResponse, HeadResponse, Metadata


@pytest.fixture
def repo_root():
    """Return the repository root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def src_path(repo_root):
    """Return the src directory path."""
    return repo_root / "src"


@pytest.fixture(scope="session")
def extractor():
    """One extractor for the whole run; loading the suffix table is the slow part."""
    return Extractor()


@pytest.fixture
def ts():
    return datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc)


def _make_get(url="http://thema.ai", *, status_code=200, data=b"data", headers=None, timestamp=None,
              is_final=True, calibre=0):
    return GetResponse(
        url=url,
        request_url=url,
        status_code=status_code,
        data=data,
        headers=headers,
        timestamp=timestamp or datetime(2024, 1, 1, 12, 13, 14, tzinfo=timezone.utc),
        retry_attempt=0,
        is_final=is_final,
        fetcher_name="Test",
        fetcher_version="v0.0.1",
        fetcher_calibre=calibre,
    )


@pytest.fixture
def make_get():
    """Factory for GET responses with test defaults."""
    return _make_get


@pytest.fixture
def get_responses():
    return [
        _make_get(status_code=301, data=None, headers=None, is_final=False),
        _make_get(status_code=200, data=b"data", headers={"foo": "bar"}, is_final=True),
    ]


@pytest.fixture
def head_responses(ts):
    return [
        HeadResponse(
            url="http://thema.ai",
            request_url="http://thema.ai",
            status_code=code,
            headers=None,
            timestamp=ts,
            retry_attempt=0,
            is_final=final,
            fetcher_name="Test",
            fetcher_version="v0.0.1",
            fetcher_calibre=0,
        )
        for code, final in ((301, False), (200, True))
    ]


@pytest.fixture
def metadata_record():
    return Metadata(
        state="success",
        url="https://thema.ai/",
        logs="foo bar, bar baz",
        traceback=None,
        run_time=0.112,
    )
