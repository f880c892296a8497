# tests/test_ids.py

import pytest

from hod.errors import TaskFormatError, TaskValidationError
from hod.ids import (
    MAX_ID_LENGTH,
    compare_ids,
    depth,
    direct_children_of,
    is_direct_child,
    is_valid_task_id,
    next_child_id,
    next_main_id,
    parent_of,
    sort_ids,
    validate_task_id,
)


@pytest.mark.parametrize("task_id", ["1", "12", "1.2", "1.2.3", "0.10"])
def test_valid_ids(task_id: str) -> None:
    assert is_valid_task_id(task_id)
    assert validate_task_id(task_id) == task_id


@pytest.mark.parametrize("task_id", ["", "a", "1.", ".1", "1..2", "1.a", " 1", "-1"])
def test_invalid_ids(task_id: str) -> None:
    assert not is_valid_task_id(task_id)
    with pytest.raises(TaskFormatError):
        validate_task_id(task_id)


def test_overlong_id_reports_length() -> None:
    task_id = ".".join(["1"] * 30)
    assert len(task_id) > MAX_ID_LENGTH
    with pytest.raises(TaskFormatError, match="maximum length"):
        validate_task_id(task_id)


def test_compare_ids_is_numeric_per_segment() -> None:
    assert compare_ids("1.2", "1.10") < 0
    assert compare_ids("10", "9") > 0
    assert compare_ids("2", "1.99") > 0
    assert compare_ids("1.2", "1.2") == 0
    # Missing segments count as zero
    assert compare_ids("1", "1.0") == 0
    assert compare_ids("1", "1.1") < 0


def test_sort_ids_orders_numerically() -> None:
    assert sort_ids(["2", "1.10", "1.2", "10", "1"]) == ["1", "1.2", "1.10", "2", "10"]


def test_sort_ids_is_idempotent_and_non_mutating() -> None:
    ids = ["3", "1.10", "1.9", "1"]
    once = sort_ids(ids)
    assert ids == ["3", "1.10", "1.9", "1"]
    assert sort_ids(once) == once
    assert once is not ids


def test_parent_and_depth() -> None:
    assert depth("1") == 1
    assert depth("1.2.3") == 3
    assert parent_of("1") is None
    assert parent_of("1.2") == "1"
    assert parent_of("1.2.3") == "1.2"


def test_direct_children_excludes_grandchildren_and_prefix_lookalikes() -> None:
    assert direct_children_of("1", ["1.1", "1.10", "1.1.1", "2"]) == ["1.1", "1.10"]
    assert not is_direct_child("1.1", "1.10")
    assert is_direct_child("1.1", "1.1.1")


def test_next_main_id() -> None:
    assert next_main_id([]) == "1"
    assert next_main_id(["1", "3", "3.4", "2"]) == "4"


def test_next_child_id() -> None:
    assert next_child_id("1", ["1", "2"]) == "1.1"
    assert next_child_id("1", ["1", "1.1", "1.3", "1.3.1"]) == "1.4"
    assert next_child_id("1", ["1", "1.1"], attempt=2) == "1.4"


def test_next_child_id_rejects_overlong_candidate() -> None:
    parent = "1" * MAX_ID_LENGTH
    with pytest.raises(TaskValidationError, match="maximum length"):
        next_child_id(parent, [parent])
