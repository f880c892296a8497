"""
HOD - Task Identifiers
======================
Hierarchical dotted-integer IDs: "1", "1.2", "1.2.3".

Ordering is numeric per segment, never lexicographic:
    sort_ids(["2", "1.10", "1.2", "10"]) -> ["1.2", "1.10", "2", "10"]
"""

import re
from functools import cmp_to_key
from typing import Iterable, List, Optional

from .errors import TaskFormatError, TaskValidationError

ID_PATTERN = re.compile(r"^\d+(\.\d+)*$")
MAX_ID_LENGTH = 50


def is_valid_task_id(task_id: str) -> bool:
    """Check an ID without raising"""
    if not isinstance(task_id, str) or len(task_id) > MAX_ID_LENGTH:
        return False
    return ID_PATTERN.match(task_id) is not None


def validate_task_id(task_id: str) -> str:
    """Raise TaskFormatError for a malformed ID, return it otherwise"""
    if not isinstance(task_id, str):
        raise TaskFormatError(f"Invalid task ID: {task_id!r}")
    # Length first so oversized garbage gets the more useful message
    if len(task_id) > MAX_ID_LENGTH:
        raise TaskFormatError(
            f"Task ID exceeds the maximum length of {MAX_ID_LENGTH} characters: '{task_id}'"
        )
    if not ID_PATTERN.match(task_id):
        raise TaskFormatError(f"Invalid task ID format: '{task_id}'")
    return task_id


def _segments(task_id: str) -> List[int]:
    return [int(part) for part in task_id.split(".")]


def compare_ids(a: str, b: str) -> int:
    """Segment-wise numeric comparison; missing segments count as 0"""
    parts_a = _segments(a)
    parts_b = _segments(b)
    for i in range(max(len(parts_a), len(parts_b))):
        val_a = parts_a[i] if i < len(parts_a) else 0
        val_b = parts_b[i] if i < len(parts_b) else 0
        if val_a != val_b:
            return -1 if val_a < val_b else 1
    return 0


def sort_ids(ids: Iterable[str]) -> List[str]:
    """Return a new list sorted by compare_ids (input is left untouched)"""
    return sorted(ids, key=cmp_to_key(compare_ids))


def depth(task_id: str) -> int:
    return task_id.count(".") + 1


def parent_of(task_id: str) -> Optional[str]:
    """ID with the last segment dropped, None for top-level tasks"""
    if "." not in task_id:
        return None
    return task_id.rsplit(".", 1)[0]


def is_direct_child(parent_id: str, task_id: str) -> bool:
    # "1.10" starts with "1.1" textually, hence the depth check
    return depth(task_id) == depth(parent_id) + 1 and task_id.startswith(parent_id + ".")


def direct_children_of(parent_id: str, all_ids: Iterable[str]) -> List[str]:
    """
    IDs exactly one level below parent_id.

    direct_children_of("1", ["1.1", "1.10", "1.1.1", "2"]) -> ["1.1", "1.10"]
    """
    return sort_ids(task_id for task_id in all_ids if is_direct_child(parent_id, task_id))


def next_main_id(all_ids: Iterable[str]) -> str:
    """Next free top-level ID: highest first segment + 1"""
    tops = [int(task_id.split(".")[0]) for task_id in all_ids if is_valid_task_id(task_id)]
    if not tops:
        return "1"
    return str(max(tops) + 1)


def next_child_id(parent_id: str, all_ids: Iterable[str], attempt: int = 0) -> str:
    """
    Next child slot under parent_id.

    `attempt` skips ahead when the natural candidate turns out to be taken.
    """
    children = direct_children_of(parent_id, all_ids)
    highest = max((int(child.rsplit(".", 1)[1]) for child in children), default=0)
    candidate = f"{parent_id}.{highest + 1 + attempt}"
    if len(candidate) > MAX_ID_LENGTH:
        raise TaskValidationError(
            f"Cannot create subtask: ID '{candidate}' exceeds the maximum length of "
            f"{MAX_ID_LENGTH} characters"
        )
    return candidate
