# tests/test_index.py

import json
from pathlib import Path

import pytest

from hod.errors import (
    CircularDependencyError,
    IndexCorruptionError,
    TaskFormatError,
    TaskValidationError,
)
from hod.index import IndexStore, find_any_cycle
from hod.schema import IndexEntry


def _write_index(tasks_dir: Path, data) -> None:
    path = tasks_dir / ".hod" / "index.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_missing_index_is_empty(index_store: IndexStore) -> None:
    assert index_store.load() == {}


def test_update_then_load(index_store: IndexStore, tasks_dir: Path) -> None:
    entry = IndexEntry(status="in_progress", dependencies=["2"])
    index_store.update("2", IndexEntry())
    index_store.update("1", entry)

    snapshot = index_store.load()
    assert snapshot["1"] == entry
    assert snapshot["2"].status == "pending"

    raw = json.loads((tasks_dir / ".hod" / "index.json").read_text(encoding="utf-8"))
    assert list(raw) == ["1", "2"]
    assert raw["1"] == {"status": "in_progress", "dependencies": ["2"]}


def test_dependencies_are_deduplicated() -> None:
    entry = IndexEntry(dependencies=[" 1", "2", "1", ""])
    assert entry.dependencies == ["1", "2"]


def test_cycle_is_rejected(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry())
    index_store.update("2", IndexEntry(dependencies=["1"]))

    with pytest.raises(TaskValidationError) as exc_info:
        index_store.update("1", IndexEntry(dependencies=["2"]))
    assert isinstance(exc_info.value, CircularDependencyError)
    assert exc_info.value.cycle == ["1", "2", "1"]
    assert index_store.load()["1"].dependencies == []


def test_longer_cycle_is_rejected(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry(dependencies=["2"]))
    index_store.update("2", IndexEntry(dependencies=["3"]))
    with pytest.raises(CircularDependencyError, match="3 -> 1 -> 2 -> 3"):
        index_store.update("3", IndexEntry(dependencies=["1"]))


def test_self_dependency_is_rejected(index_store: IndexStore) -> None:
    with pytest.raises(CircularDependencyError, match="itself"):
        index_store.update("1", IndexEntry(dependencies=["1"]))


def test_invalid_dependency_id(index_store: IndexStore) -> None:
    with pytest.raises(TaskFormatError):
        index_store.update("1", IndexEntry(dependencies=["x"]))


def test_unknown_dependency_is_allowed(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry(dependencies=["9"]))
    assert index_store.load()["1"].dependencies == ["9"]


def test_open_status_vocabulary(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry(status="blocked"))
    with pytest.raises(TaskValidationError):
        index_store.update("1", IndexEntry(status="two words"))


def test_closed_status_vocabulary(tasks_dir: Path) -> None:
    store = IndexStore(tasks_dir, statuses=["pending", "completed"])
    store.update("1", IndexEntry(status="completed"))
    with pytest.raises(TaskValidationError, match="Unknown status"):
        store.update("1", IndexEntry(status="blocked"))
    assert store.load()["1"].status == "completed"


def test_remove_is_idempotent(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry())
    index_store.remove("1")
    index_store.remove("1")
    assert index_store.load() == {}


@pytest.mark.parametrize("raw", ["{not json", "42"])
def test_corrupt_index(index_store: IndexStore, tasks_dir: Path, raw: str) -> None:
    path = tasks_dir / ".hod" / "index.json"
    path.parent.mkdir(parents=True)
    path.write_text(raw, encoding="utf-8")
    with pytest.raises(IndexCorruptionError):
        index_store.load()


def test_invalid_key_in_index(index_store: IndexStore, tasks_dir: Path) -> None:
    _write_index(tasks_dir, {"abc": {"status": "pending", "dependencies": []}})
    with pytest.raises(IndexCorruptionError, match="abc"):
        index_store.load()


def test_legacy_shapes(index_store: IndexStore, tasks_dir: Path) -> None:
    _write_index(tasks_dir, [])
    assert index_store.load() == {}

    _write_index(tasks_dir, {"1": [], "2": ["1"]})
    snapshot = index_store.load()
    assert snapshot["2"] == IndexEntry(status="pending", dependencies=["1"])


def test_get_next_tasks_chain(index_store: IndexStore, tasks_dir: Path) -> None:
    _write_index(
        tasks_dir,
        {
            "1": {"status": "done", "dependencies": []},
            "2": {"status": "pending", "dependencies": ["1"]},
            "3": {"status": "pending", "dependencies": ["2"]},
        },
    )
    assert index_store.get_next_tasks({"done"}) == ["2"]


def test_get_next_tasks_unknown_dependency_is_unmet(index_store: IndexStore) -> None:
    index_store.update("1", IndexEntry(dependencies=["5"]))
    index_store.update("2", IndexEntry())
    index_store.update("10", IndexEntry())
    assert index_store.get_next_tasks(["completed"]) == ["2", "10"]


def test_rebuild_rejects_cycles(index_store: IndexStore) -> None:
    entries = {"1": IndexEntry(dependencies=["2"]), "2": IndexEntry(dependencies=["1"])}
    with pytest.raises(CircularDependencyError):
        index_store.rebuild(entries)
    assert index_store.load() == {}


def test_find_any_cycle() -> None:
    assert find_any_cycle({"1": ["2"], "2": []}) is None
    assert find_any_cycle({"1": ["2"], "2": ["3"], "3": ["1"]}) == ["1", "2", "3", "1"]


def test_find_any_cycle_handles_long_chains() -> None:
    size = 5000
    graph = {str(i): [str(i + 1)] for i in range(1, size)}
    graph[str(size)] = []
    assert find_any_cycle(graph) is None

    graph[str(size)] = ["1"]
    cycle = find_any_cycle(graph)
    assert cycle[0] == cycle[-1] == "1"
    assert len(cycle) == size + 1


def test_rebuild_accepts_long_dependency_chain(index_store: IndexStore) -> None:
    entries = {str(i): IndexEntry(dependencies=[str(i + 1)]) for i in range(1, 2000)}
    entries["2000"] = IndexEntry()
    index_store.rebuild(entries)
    assert len(index_store.load()) == 2000
