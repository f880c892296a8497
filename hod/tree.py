"""
HOD - Task Tree
===============
Builds the parent/child forest from flat task IDs.

    1   pending    Backend
    ├── 1.1  completed  Schema
    └── 1.2  pending    API
    2   pending    Docs

A task whose parent ID does not exist is an orphan: it is kept at the
root level and flagged. Building never raises; bad input turns into
warnings.
"""

from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .ids import compare_ids, is_valid_task_id, parent_of
from .schema import DEFAULT_STATUS, IndexEntry


@dataclass
class TreeNode:
    id: str
    status: str
    title: str = ""
    orphan: bool = False
    children: List["TreeNode"] = field(default_factory=list)


@dataclass
class TreeBuildResult:
    tree: List[TreeNode] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


_node_order = cmp_to_key(lambda a, b: compare_ids(a.id, b.id))


def build_tree(
    tasks: Sequence[Tuple[str, str]],
    index: Optional[Mapping[str, IndexEntry]] = None,
) -> TreeBuildResult:
    """
    Build the forest from (id, title) pairs plus the index snapshot.

    Children and roots come out in ID order.
    """
    index = index or {}
    result = TreeBuildResult()
    nodes: Dict[str, TreeNode] = {}

    for task_id, title in tasks:
        if not is_valid_task_id(task_id):
            result.warnings.append(f"Task with invalid ID '{task_id}' skipped in tree")
            continue
        if task_id in nodes:
            result.warnings.append(f"Duplicate task ID '{task_id}' skipped in tree")
            continue
        entry = index.get(task_id)
        if entry is None:
            result.warnings.append(f"Task {task_id} has no index entry; showing as {DEFAULT_STATUS}")
        nodes[task_id] = TreeNode(
            id=task_id,
            status=entry.status if entry else DEFAULT_STATUS,
            title=title,
        )

    # Link in a second pass so input order does not matter
    for task_id, node in nodes.items():
        parent_id = parent_of(task_id)
        if parent_id is None:
            result.tree.append(node)
        elif parent_id in nodes:
            nodes[parent_id].children.append(node)
        else:
            node.orphan = True
            result.tree.append(node)
            result.warnings.append(f"Orphaned subtask {task_id}: parent {parent_id} does not exist")

    for node in nodes.values():
        node.children.sort(key=_node_order)
    result.tree.sort(key=_node_order)
    return result


def detect_orphans(nodes: List[TreeNode]) -> List[str]:
    """IDs of every orphan in the forest"""
    orphans = []
    for node in nodes:
        if node.orphan:
            orphans.append(node.id)
        orphans.extend(detect_orphans(node.children))
    return orphans


def format_tree(nodes: List[TreeNode], prefix: str = "") -> str:
    """Render with box-drawing connectors"""
    lines = []
    for i, node in enumerate(nodes):
        last = i == len(nodes) - 1
        connector = "└──" if last else "├──"
        marker = " (orphan)" if node.orphan else ""
        lines.append(f"{prefix}{connector}{node.id}  {node.status}    {node.title}{marker}")
        if node.children:
            lines.append(format_tree(node.children, prefix + ("   " if last else "│  ")))
    return "\n".join(lines)


def tree_to_json(nodes: List[TreeNode]) -> List[Dict[str, Any]]:
    result = []
    for node in nodes:
        item: Dict[str, Any] = {"id": node.id, "title": node.title, "status": node.status}
        if node.orphan:
            item["orphan"] = True
        item["children"] = tree_to_json(node.children)
        result.append(item)
    return result
