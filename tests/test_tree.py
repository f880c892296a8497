# tests/test_tree.py

from hod.schema import IndexEntry
from hod.tree import build_tree, detect_orphans, format_tree, tree_to_json


def test_children_sorted_numerically_regardless_of_input_order() -> None:
    pairs = [("1.10", "J"), ("2", "B"), ("1", "A"), ("1.2", "I")]
    index = {task_id: IndexEntry() for task_id, _ in pairs}

    result = build_tree(pairs, index)

    assert [n.id for n in result.tree] == ["1", "2"]
    assert [n.id for n in result.tree[0].children] == ["1.2", "1.10"]
    assert result.warnings == []


def test_orphans_are_kept_at_root_and_flagged() -> None:
    result = build_tree([("1", "A"), ("3.1", "Lost")], {"1": IndexEntry(), "3.1": IndexEntry()})

    assert [n.id for n in result.tree] == ["1", "3.1"]
    assert result.tree[1].orphan
    assert detect_orphans(result.tree) == ["3.1"]
    assert any("3.1" in w for w in result.warnings)


def test_missing_index_entry_defaults_to_pending() -> None:
    result = build_tree([("1", "A")], {})
    assert result.tree[0].status == "pending"
    assert len(result.warnings) == 1


def test_invalid_and_duplicate_ids_are_skipped() -> None:
    result = build_tree([("1", "A"), ("x", "Bad"), ("1", "Again")], {"1": IndexEntry()})
    assert [n.id for n in result.tree] == ["1"]
    assert result.tree[0].title == "A"
    assert len(result.warnings) == 2


def test_format_tree() -> None:
    index = {
        "1": IndexEntry(status="pending"),
        "1.1": IndexEntry(status="completed"),
        "1.2": IndexEntry(status="pending"),
        "2": IndexEntry(status="pending"),
    }
    result = build_tree([("1", "Backend"), ("1.1", "Schema"), ("1.2", "API"), ("2", "Docs")], index)

    lines = format_tree(result.tree).split("\n")
    assert lines[0] == "├──1  pending    Backend"
    assert lines[1] == "│  ├──1.1  completed    Schema"
    assert lines[2] == "│  └──1.2  pending    API"
    assert lines[3] == "└──2  pending    Docs"


def test_tree_to_json() -> None:
    result = build_tree([("1", "A"), ("1.1", "B")], {"1": IndexEntry(), "1.1": IndexEntry(status="completed")})
    assert tree_to_json(result.tree) == [
        {
            "id": "1",
            "title": "A",
            "status": "pending",
            "children": [{"id": "1.1", "title": "B", "status": "completed", "children": []}],
        }
    ]
