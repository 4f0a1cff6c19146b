from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core.storage.document_store import GeneratedDocumentStore

NOW = datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)


def _add(store: GeneratedDocumentStore, format_id: str, *, prospect_id: str | None = None, age: timedelta):
    return store.add(
        file_name=f"{format_id}.xlsx",
        format_id=format_id,
        content_hash="0" * 32,
        location=f"file:///out/{format_id}.xlsx",
        prospect_id=prospect_id,
        now=NOW - age,
    )


def test_add_persists_and_get_round_trips(tmp_path: Path) -> None:
    store_path = tmp_path / "meta" / "documents.json"
    store = GeneratedDocumentStore(store_path)

    record = store.add(
        file_name="a.xlsx",
        format_id="general",
        content_hash="abc",
        location="file:///tmp/a.xlsx",
        document_type="identificacion_cliente",
        prospect_id="P1",
        expediente="77",
        wa_id="521",
        now=NOW,
    )

    assert store_path.exists()
    assert not store_path.with_suffix(".json.tmp").exists()
    reloaded = GeneratedDocumentStore(store_path).get(record.id)
    assert reloaded == record
    assert reloaded.created_at == NOW.isoformat()
    assert reloaded.download_count == 0
    raw = json.loads(store_path.read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert list(raw["documents"]) == [record.id]


def test_get_unknown_and_empty_store(tmp_path: Path) -> None:
    store = GeneratedDocumentStore(tmp_path / "documents.json")

    assert store.get("missing") is None
    assert store.list_documents() == []
    assert store.increment_downloads("missing") is None


def test_list_documents_newest_first_with_filters(tmp_path: Path) -> None:
    store = GeneratedDocumentStore(tmp_path / "documents.json")
    oldest = _add(store, "general", prospect_id="P1", age=timedelta(days=3))
    newest = _add(store, "general", prospect_id="P1", age=timedelta(hours=1))
    other = _add(store, "con_HC", prospect_id="P2", age=timedelta(days=1))

    assert [row.id for row in store.list_documents()] == [newest.id, other.id, oldest.id]
    assert [row.id for row in store.list_documents(prospect_id="P1")] == [newest.id, oldest.id]
    assert [row.id for row in store.list_documents(format_id="con_HC")] == [other.id]
    assert [row.id for row in store.list_documents(limit=1)] == [newest.id]
    assert store.list_documents(limit=-3) == []
    assert store.find_latest(prospect_id="P1", format_id="general") == newest
    assert store.find_latest(prospect_id="P3", format_id="general") is None


def test_increment_downloads(tmp_path: Path) -> None:
    store = GeneratedDocumentStore(tmp_path / "documents.json")
    record = _add(store, "general", age=timedelta(0))

    store.increment_downloads(record.id, now=NOW)
    updated = store.increment_downloads(record.id, now=NOW + timedelta(minutes=5))

    assert updated is not None
    assert updated.download_count == 2
    assert store.get(record.id).last_download_at == (NOW + timedelta(minutes=5)).isoformat()


def test_stats_counts_trailing_windows(tmp_path: Path) -> None:
    store = GeneratedDocumentStore(tmp_path / "documents.json")
    _add(store, "general", age=timedelta(hours=2))
    _add(store, "general", age=timedelta(days=3))
    _add(store, "sin_HC", age=timedelta(days=10))
    _add(store, "sin_HC", age=timedelta(days=45))

    stats = store.stats(now=NOW)

    assert stats == {
        "total": 3,
        "last_day": 1,
        "last_week": 2,
        "by_format": {"general": 2, "sin_HC": 1},
    }


def test_invalid_store_json_raises(tmp_path: Path) -> None:
    store_path = tmp_path / "documents.json"
    store_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid document store JSON"):
        GeneratedDocumentStore(store_path).list_documents()
