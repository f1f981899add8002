# tests/test_reference_images_store.py

import json
import threading
import time

import pytest
from sqlalchemy.orm import sessionmaker

from api.reference_images.reference_images_model import ReferenceImage
from api.reference_images.reference_images_schema import ReferenceImageCreate, UploadedBy
from api.reference_images.reference_images_store import (
    InMemoryReferenceImageStore,
    JsonReferenceImageStore,
    SqlReferenceImageStore,
    build_reference_store,
)
from api.reference_images.reference_images_service import find_similar_images
from config.database import Base, build_engine
from utils.errors import ValidationError


@pytest.fixture
def sql_store(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'reference_images.db'}")
    Base.metadata.create_all(bind=engine, tables=[ReferenceImage.__table__])
    yield SqlReferenceImageStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture(params=["memory", "json", "sql"])
def store(request, memory_store, json_store, sql_store):
    return {"memory": memory_store, "json": json_store, "sql": sql_store}[request.param]


def test_add_normalises_fields(store):
    record = store.add({
        "title": None,
        "tags": " logo, 2026 ,",
        "fingerprint": "  FF00FF00 ",
        "fingerprintAlgorithm": " AHash ",
        "fingerprintLength": "abc",
        "uploadedBy": {"id": 7, "email": "admin@example.com", "role": "admin"},
    })

    assert record.id
    assert record.title == "Untitled reference"
    assert record.description == ""
    assert record.source_url == ""
    assert record.tags == ["logo", "2026"]
    assert record.fingerprint == "ff00ff00"
    assert record.fingerprint_algorithm == "ahash"
    assert record.fingerprint_length == 8
    assert record.created_at is not None
    assert record.created_at == record.updated_at

    stored = store.get(record.id)
    assert stored.fingerprint == "ff00ff00"
    assert stored.tags == ["logo", "2026"]
    assert stored.uploaded_by == UploadedBy(id=7, email="admin@example.com", role="admin")


@pytest.mark.parametrize("fingerprint", [None, "", "not-hex"])
def test_add_rejects_invalid_fingerprint(store, fingerprint):
    with pytest.raises(ValidationError):
        store.add(ReferenceImageCreate(title="Logo", fingerprint=fingerprint))
    assert store.list() == []


def test_list_is_newest_first(store):
    first = store.add({"title": "first", "fingerprint": "aa"})
    time.sleep(0.01)
    second = store.add({"title": "second", "fingerprint": "bb"})

    assert [r.id for r in store.list()] == [second.id, first.id]
    assert store.count() == 2


def test_delete_is_idempotent(store):
    record = store.add({"title": "Logo", "fingerprint": "abcd"})

    removed = store.delete(record.id)
    assert removed.id == record.id
    assert removed.title == "Logo"
    assert store.delete(record.id) is None
    assert store.delete("") is None
    assert store.get(record.id) is None


def test_ids_are_unique(store):
    ids = {store.add({"fingerprint": "ff"}).id for _ in range(20)}
    assert len(ids) == 20


def test_json_store_persists_across_instances(json_store):
    record = json_store.add({"title": "Logo", "fingerprint": "abcd", "fileName": "abc.png"})

    reopened = JsonReferenceImageStore(json_store.data_file)
    assert [r.id for r in reopened.list()] == [record.id]

    document = json.loads(json_store.data_file.read_text())
    assert "updatedAt" in document
    assert document["images"][0]["fingerprintAlgorithm"] == "ahash"
    assert document["images"][0]["fileName"] == "abc.png"


def test_json_store_creates_missing_file(json_store):
    assert not json_store.data_file.exists()
    assert json_store.list() == []
    assert json_store.data_file.exists()


def test_json_store_resets_corrupt_document(json_store, caplog):
    json_store.data_file.parent.mkdir(parents=True, exist_ok=True)
    json_store.data_file.write_text("{not json")

    with caplog.at_level("ERROR"):
        assert json_store.list() == []

    assert "Resetting to an empty library" in caplog.text
    assert json.loads(json_store.data_file.read_text())["images"] == []


def test_json_store_reads_legacy_list(json_store):
    json_store.data_file.parent.mkdir(parents=True, exist_ok=True)
    json_store.data_file.write_text(json.dumps([
        {"id": "old", "title": "Old", "fingerprint": "abcd", "uploadedAt": "2023-01-01T00:00:00Z"},
        {"id": "new", "title": "New", "fingerprint": "abce", "createdAt": "2024-01-01T00:00:00Z"},
        {"id": "broken"},
    ]))

    records = json_store.list()

    assert [r.id for r in records] == ["new", "old"]
    assert records[1].fingerprint_length == 4
    assert records[1].fingerprint_algorithm == "ahash"


def test_json_store_deletes_malformed_entry(json_store):
    json_store.data_file.parent.mkdir(parents=True, exist_ok=True)
    json_store.data_file.write_text(json.dumps({"images": [{"id": "broken", "fileName": "x.png"}]}))

    removed = json_store.delete("broken")

    assert removed.id == "broken"
    assert removed.file_name == "x.png"
    assert json.loads(json_store.data_file.read_text())["images"] == []


def test_json_store_concurrent_adds(json_store):
    """Parallel writers never lose each other's records"""
    errors = []

    def worker(n):
        try:
            for i in range(5):
                json_store.add({"title": f"t{n}-{i}", "fingerprint": format(n * 10 + i, "04x")})
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert json_store.count() == 40
    assert len({r.id for r in json_store.list()}) == 40


def test_memory_store_is_isolated():
    a, b = InMemoryReferenceImageStore(), InMemoryReferenceImageStore()
    a.add({"fingerprint": "ff"})
    assert b.list() == []


def test_build_reference_store_backends(settings):
    assert isinstance(build_reference_store(settings), InMemoryReferenceImageStore)

    json_settings = settings.model_copy(update={"REFERENCE_STORE_BACKEND": "json"})
    store = build_reference_store(json_settings)
    assert isinstance(store, JsonReferenceImageStore)
    assert store.data_file == json_settings.reference_store_file


def test_json_store_skips_non_hex_fingerprints(json_store):
    """A hand-edited entry must not break searches over the rest"""
    good = json_store.add({"title": "Logo", "fingerprint": "ff00ff00"})
    document = json.loads(json_store.data_file.read_text())
    document["images"].append(
        {"id": "legacy", "title": "Legacy", "fingerprint": "zz00ff00", "createdAt": "2023-01-01T00:00:00Z"}
    )
    document["images"].append(
        {"id": "upper", "title": "Upper", "fingerprint": "FF00FF01", "fingerprintAlgorithm": " AHASH "}
    )
    json_store.data_file.write_text(json.dumps(document))

    records = json_store.list()
    assert {r.id for r in records} == {good.id, "upper"}

    upper = next(r for r in records if r.id == "upper")
    assert upper.fingerprint == "ff00ff01"
    assert upper.fingerprint_algorithm == "ahash"

    outcome = find_similar_images(records, "ff00ff00")
    assert [m.image.id for m in outcome.matches] == [good.id, "upper"]


def test_sql_store_skips_non_hex_fingerprints(sql_store):
    good = sql_store.add({"title": "Logo", "fingerprint": "ff00ff00"})
    db = sql_store.session_factory()
    try:
        db.add(ReferenceImage(id="legacy", title="Legacy", fingerprint="zz00ff00", fingerprint_length=8))
        db.commit()
    finally:
        db.close()

    outcome = find_similar_images(sql_store.list(), "ff00ff00")
    assert [m.image.id for m in outcome.matches] == [good.id]


@pytest.mark.parametrize("backend", ["json", "sql"])
def test_concurrent_adds_and_deletes(backend, json_store, sql_store):
    """Deletes of seeded ids interleaved with adds keep both sets of changes"""
    store = json_store if backend == "json" else sql_store
    seeded = [store.add({"title": f"seed-{i}", "fingerprint": format(i, "04x")}).id for i in range(12)]
    to_delete = seeded[::2]
    added, errors = [], []

    def adder(n):
        try:
            for i in range(4):
                added.append(store.add({"title": f"new-{n}-{i}", "fingerprint": format(1000 + n * 10 + i, "04x")}).id)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    def deleter(ids):
        try:
            for image_id in ids:
                assert store.delete(image_id) is not None
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=adder, args=(n,)) for n in range(3)]
    threads += [threading.Thread(target=deleter, args=(to_delete[i::2],)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    expected = (set(seeded) - set(to_delete)) | set(added)
    assert {r.id for r in store.list()} == expected
    assert len(added) == 12
