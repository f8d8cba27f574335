from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from cleanpaths.core.database import SqlMappingStore, sqlite_url
from cleanpaths.core.errors import StoreUnavailable
from cleanpaths.core.models import PathMapping
from cleanpaths.core.storage import JsonMappingStore, MappingStore, MemoryMappingStore
from cleanpaths.mapper import PathMapper


@pytest.fixture(params=["memory", "json", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> MappingStore:
    if request.param == "memory":
        return MemoryMappingStore()
    if request.param == "json":
        return JsonMappingStore(tmp_path / "mappings.json")
    return SqlMappingStore(sqlite_url(tmp_path / "cleanpaths.db"))


def test_store_implements_protocol(store: MappingStore) -> None:
    assert isinstance(store, MappingStore)


def test_find_returns_none_for_unknown_path(store: MappingStore) -> None:
    assert store.find("/missing.png") is None
    assert store.count() == 0


def test_upsert_overwrites_and_keeps_one_record(store: MappingStore) -> None:
    assert store.upsert("/wp-content/uploads/a.jpg", "/media/a.jpg")
    assert store.upsert("/wp-content/uploads/a.jpg", "/files/a.jpg")
    assert store.upsert("/wp-content/uploads/b.jpg", "/media/b.jpg")
    assert store.find("/wp-content/uploads/a.jpg") == "/files/a.jpg"
    assert store.count() == 2
    assert [r.original_path for r in store.records()] == [
        "/wp-content/uploads/a.jpg",
        "/wp-content/uploads/b.jpg",
    ]


def test_find_is_exact_match(store: MappingStore) -> None:
    store.upsert("/a.jpg", "/media/a.jpg")
    assert store.find("/A.jpg") is None
    assert store.find("/a.jpg ") is None


def test_clear_all_removes_every_record(store: MappingStore) -> None:
    store.upsert("/a.jpg", "/media/a.jpg")
    store.upsert("/b.jpg", "/media/b.jpg")
    store.clear_all()
    assert store.count() == 0
    assert store.find("/a.jpg") is None


def test_concurrent_first_writes_leave_one_record(store: MappingStore) -> None:
    mapper = PathMapper(store)
    paths = [f"/wp-content/uploads/{i % 5}.jpg" for i in range(40)]
    results: list[str] = []
    lock = threading.Lock()

    def worker(chunk: list[str]) -> None:
        for path in chunk:
            clean = mapper.canonicalize(path)
            with lock:
                results.append(clean)

    threads = [threading.Thread(target=worker, args=(paths[i::4],)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 40
    assert store.count() == 5
    assert mapper.diagnostics().ok
    assert {r.clean_path for r in store.records()} == {f"/media/{i}.jpg" for i in range(5)}


def test_json_store_persists_across_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "mappings.json"
    store = JsonMappingStore(path)
    store.upsert("/wp-content/uploads/a.jpg", "/media/a.jpg")
    assert not path.exists()
    store.flush()

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["version"] == 1
    assert data["mappings"][0]["original_path"] == "/wp-content/uploads/a.jpg"

    reopened = JsonMappingStore(path)
    assert reopened.find("/wp-content/uploads/a.jpg") == "/media/a.jpg"
    assert reopened.count() == 1


def test_json_store_reports_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JsonMappingStore(path).find("/a.jpg")


def test_json_store_keeps_original_creation_time(tmp_path: Path) -> None:
    store = JsonMappingStore(tmp_path / "mappings.json")
    store.upsert("/a.jpg", "/media/a.jpg")
    created = store.records()[0].created_at
    store.upsert("/a.jpg", "/files/a.jpg")
    record = store.records()[0]
    assert record.created_at == created
    assert record.updated_at >= created


def test_sql_store_persists_across_reopen(tmp_path: Path) -> None:
    url = sqlite_url(tmp_path / "cleanpaths.db")
    first = SqlMappingStore(url)
    first.upsert("/wp-content/uploads/a.jpg", "/media/a.jpg")
    first.close()

    reopened = SqlMappingStore(url)
    assert reopened.find("/wp-content/uploads/a.jpg") == "/media/a.jpg"
    assert reopened.count() == 1
    reopened.close()


def test_sql_store_wraps_database_errors(tmp_path: Path) -> None:
    store = SqlMappingStore(sqlite_url(tmp_path / "cleanpaths.db"))
    store.close()
    (tmp_path / "cleanpaths.db").unlink()
    (tmp_path / "cleanpaths.db").mkdir()
    with pytest.raises(StoreUnavailable):
        store.find("/a.jpg")


def test_path_mapping_round_trips_through_dict() -> None:
    mapping = PathMapping("/wp-content/uploads/a.jpg", "/media/a.jpg")
    restored = PathMapping.from_dict(mapping.to_dict())
    assert restored == mapping


@pytest.mark.parametrize(
    "content",
    [
        "[]",
        '{"mappings": null}',
        '{"mappings": {"/a.jpg": "/media/a.jpg"}}',
    ],
)
def test_json_store_rejects_documents_of_the_wrong_shape(tmp_path: Path, content: str) -> None:
    path = tmp_path / "mappings.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JsonMappingStore(path).find("/a.jpg")


def test_json_store_skips_entries_with_bad_timestamps(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "mappings": [
                    {"original_path": "/a.jpg", "clean_path": "/media/a.jpg", "created_at": 5},
                    {"original_path": "/b.jpg", "clean_path": "/media/b.jpg"},
                ],
            }
        ),
        encoding="utf-8",
    )
    store = JsonMappingStore(path)
    assert store.find("/a.jpg") is None
    assert store.find("/b.jpg") == "/media/b.jpg"


def test_mapper_degrades_over_malformed_json_store(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    path.write_text('{"mappings": null}', encoding="utf-8")
    mapper = PathMapper(JsonMappingStore(path))
    assert mapper.canonicalize("/wp-content/uploads/a.jpg") == "/media/a.jpg"
    assert mapper.rewrite_html('<img src="/wp-content/uploads/a.jpg">') == '<img src="/media/a.jpg">'
    assert not mapper.diagnostics().ok


def test_json_store_batches_writes_until_flush(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    store = JsonMappingStore(path, flush_every=0)
    for i in range(50):
        store.upsert(f"/wp-content/uploads/{i}.jpg", f"/media/{i}.jpg")
    assert not path.exists()
    assert store.count() == 50

    store.close()
    assert JsonMappingStore(path).count() == 50


def test_json_store_flushes_after_threshold(tmp_path: Path) -> None:
    path = tmp_path / "mappings.json"
    store = JsonMappingStore(path, flush_every=3)
    store.upsert("/a.jpg", "/media/a.jpg")
    store.upsert("/b.jpg", "/media/b.jpg")
    assert not path.exists()
    store.upsert("/c.jpg", "/media/c.jpg")
    assert JsonMappingStore(path).count() == 3
