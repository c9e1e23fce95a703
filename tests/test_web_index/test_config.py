from pathlib import Path

import pytest

from web_index import config


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("WEB_INDEX_ROOT", "WEB_INDEX_LABEL", "WEB_INDEX_PARQUET_COMPRESSION", "WEB_INDEX_DUCKDB_THREADS"):
        monkeypatch.delenv(name, raising=False)

    assert config.index_root() == Path(config.DEFAULT_ROOT).resolve()
    assert config.index_label() == "web-index"
    assert config.parquet_compression() == "zstd"
    assert config.duckdb_threads() >= 1


def test_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WEB_INDEX_ROOT", str(tmp_path))
    monkeypatch.setenv("WEB_INDEX_LABEL", " archive ")
    monkeypatch.setenv("WEB_INDEX_PARQUET_COMPRESSION", "snappy")
    monkeypatch.setenv("WEB_INDEX_DUCKDB_THREADS", "3")

    assert config.index_root() == tmp_path.resolve()
    assert config.index_label() == "archive"
    assert config.parquet_compression() == "snappy"
    assert config.duckdb_threads() == 3


@pytest.mark.parametrize("value", ["", "zero", "-2"])
def test_bad_thread_count_falls_back(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("WEB_INDEX_DUCKDB_THREADS", value)

    assert config.duckdb_threads() >= 1
