from __future__ import annotations

import json

from autotune.picks import PickStore
from autotune.storage import FileStorage, MemoryStorage


def test_set_is_visible_immediately_and_written_later(storage, scheduler):
    store = PickStore(storage, app_key="app1", scheduler=scheduler)
    store.set("exp", "A")
    assert store.get("exp") == "A"
    assert storage.read("autotune.v1.app1.picks") is None

    scheduler.advance(0.1)
    assert json.loads(storage.read("autotune.v1.app1.picks")) == {"exp": "A"}


def test_writes_are_debounced_last_writer_wins(storage, scheduler):
    writes: list[str] = []

    class CountingStorage(MemoryStorage):
        def write(self, key, value):
            writes.append(value)
            super().write(key, value)

    store = PickStore(CountingStorage(), app_key="app1", scheduler=scheduler)
    store.set("a", "1")
    scheduler.advance(0.05)
    store.set("b", "2")
    store.set("a", "3")
    scheduler.advance(0.1)
    assert len(writes) == 1
    assert json.loads(writes[0]) == {"a": "3", "b": "2"}


def test_round_trip_across_restart(tmp_path, scheduler):
    first = PickStore(FileStorage(tmp_path), app_key="app1", scheduler=scheduler)
    first.set("exp", "A")
    scheduler.advance(0.1)

    restarted = PickStore(FileStorage(tmp_path), app_key="app1", scheduler=scheduler)
    assert restarted.get("exp") == "A"


def test_caches_are_scoped_by_app_key(storage, scheduler):
    store = PickStore(storage, app_key="app1", scheduler=scheduler)
    store.set("exp", "A")
    store.app_key = "app2"
    assert store.get("exp") is None
    store.set("exp", "B")
    scheduler.advance(0.1)

    assert json.loads(storage.read("autotune.v1.app1.picks")) == {"exp": "A"}
    assert json.loads(storage.read("autotune.v1.app2.picks")) == {"exp": "B"}


def test_corrupt_blob_is_treated_as_empty(scheduler, caplog):
    storage = MemoryStorage({"autotune.v1.app1.picks": "{not json"})
    store = PickStore(storage, app_key="app1", scheduler=scheduler)
    assert store.get("exp") is None
    assert "could not load saved experiment picks" in caplog.text


def test_non_mapping_blob_is_treated_as_empty(scheduler):
    storage = MemoryStorage({"autotune.v1.app1.picks": "[1, 2]"})
    store = PickStore(storage, app_key="app1", scheduler=scheduler)
    assert store.get("exp") is None
    store.set("exp", "A")
    assert store.get("exp") == "A"


def test_load_happens_once_per_session(scheduler):
    reads: list[str] = []

    class CountingStorage(MemoryStorage):
        def read(self, key):
            reads.append(key)
            return super().read(key)

    store = PickStore(CountingStorage(), app_key="app1", scheduler=scheduler)
    assert store.get("a") is None
    assert store.get("b") is None
    assert reads == ["autotune.v1.app1.picks"]


def test_saved_picks_survive_a_set_before_first_get(scheduler):
    storage = MemoryStorage({"autotune.v1.app1.picks": json.dumps({"old": "X"})})
    store = PickStore(storage, app_key="app1", scheduler=scheduler)
    store.set("new", "Y")
    scheduler.advance(0.1)
    assert json.loads(storage.read("autotune.v1.app1.picks")) == {"new": "Y", "old": "X"}


def test_write_failure_is_logged_and_cache_kept(scheduler, caplog):
    class BrokenStorage(MemoryStorage):
        def write(self, key, value):
            raise OSError("disk full")

    store = PickStore(BrokenStorage(), app_key="app1", scheduler=scheduler)
    store.set("exp", "A")
    scheduler.advance(0.1)
    assert "could not save experiment picks" in caplog.text
    assert store.get("exp") == "A"


def test_file_storage_sanitises_keys(tmp_path):
    storage = FileStorage(tmp_path)
    storage.write("autotune.v1.app/../x.picks", "{}")
    assert storage.path_for("autotune.v1.app/../x.picks").parent == tmp_path
    assert storage.read("autotune.v1.app/../x.picks") == "{}"
    assert storage.read("missing") is None
