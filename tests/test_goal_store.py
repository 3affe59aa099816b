import json
import os
import threading

import pytest

from goal_store import JsonGoalStore, InMemoryGoalStore


@pytest.fixture(params=["json", "memory"])
def store(request, tmp_path):
    if request.param == "json":
        return JsonGoalStore(str(tmp_path / "goals.json"))
    return InMemoryGoalStore()


def test_unknown_user_loads_empty(store):
    assert store.load("nobody") == []
    assert store.exists("nobody") is False


def test_save_then_load(store):
    goals = [{"id": "goal_1", "title": "Write", "completedDates": ["2024-05-15"]}]

    assert store.save("user-1", goals) is True

    assert store.load("user-1") == goals
    assert store.exists("user-1") is True
    assert store.load("user-2") == []


def test_save_replaces_previous_goals(store):
    store.save("user-1", [{"id": "a"}, {"id": "b"}])
    store.save("user-1", [{"id": "b"}])
    assert store.load("user-1") == [{"id": "b"}]


def test_saving_empty_list_keeps_document(store):
    store.save("user-1", [])
    assert store.exists("user-1") is True
    assert store.load("user-1") == []


def test_memory_store_isolates_callers():
    store = InMemoryGoalStore()
    goals = [{"id": "a", "completedDates": []}]
    store.save("u", goals)

    goals[0]["completedDates"].append("2024-05-15")
    loaded = store.load("u")
    loaded[0]["title"] = "changed"

    assert store.load("u") == [{"id": "a", "completedDates": []}]


def test_json_store_document_layout(tmp_path):
    path = tmp_path / "goals.json"
    JsonGoalStore(str(path)).save("user-1", [{"id": "a"}])

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["users"]["user-1"]["goals"] == [{"id": "a"}]
    assert "lastUpdated" in data["users"]["user-1"]


def test_json_store_keeps_backup(tmp_path):
    path = tmp_path / "goals.json"
    store = JsonGoalStore(str(path))
    store.save("user-1", [{"id": "a"}])
    store.save("user-1", [{"id": "b"}])

    backup = json.loads((tmp_path / "goals.json.bak").read_text(encoding="utf-8"))
    assert backup["users"]["user-1"]["goals"] == [{"id": "a"}]
    assert not os.path.exists(f"{path}.tmp")


def test_json_store_creates_parent_directory(tmp_path):
    store = JsonGoalStore(str(tmp_path / "nested" / "dir" / "goals.json"))
    assert store.save("u", [{"id": "a"}]) is True
    assert store.load("u") == [{"id": "a"}]


def test_json_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonGoalStore(str(path))

    assert store.load("u") == []
    assert store.save("u", [{"id": "a"}]) is True
    assert store.load("u") == [{"id": "a"}]


def test_json_store_resets_unexpected_shape(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text(json.dumps(["a", "b"]), encoding="utf-8")
    assert JsonGoalStore(str(path)).load("u") == []


def test_json_store_reports_failed_write(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = JsonGoalStore(str(blocker / "goals.json"))

    assert store.save("u", [{"id": "a"}]) is False


def test_json_store_skips_malformed_user_document(tmp_path):
    path = tmp_path / "goals.json"
    path.write_text(json.dumps({"users": {"u": ["not", "a", "document"]}}), encoding="utf-8")
    store = JsonGoalStore(str(path))

    assert store.load("u") == []
    assert store.save("u", [{"id": "a"}]) is True
    assert store.load("u") == [{"id": "a"}]


def test_json_store_concurrent_saves_keep_every_user(tmp_path):
    store = JsonGoalStore(str(tmp_path / "goals.json"))
    workers = 20
    barrier = threading.Barrier(workers)
    results = [None] * workers

    def save(i):
        barrier.wait()
        results[i] = store.save(f"user-{i}", [{"id": f"g{i}"}])

    threads = [threading.Thread(target=save, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(results)
    for i in range(workers):
        assert store.load(f"user-{i}") == [{"id": f"g{i}"}]
    assert list(tmp_path.glob("*.tmp")) == []
