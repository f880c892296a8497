"""
HOD - Index Store
=================
Status and dependencies of every task, in one snapshot file:

    tasks/.hod/index.json
    {
      "1": {"status": "completed", "dependencies": []},
      "2": {"status": "pending", "dependencies": ["1"]}
    }

The snapshot is loaded whole on every access and written whole through a
temp file + rename, so a crash leaves either the old or the new snapshot.
Nothing is cached between calls.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import (
    CircularDependencyError,
    IndexCorruptionError,
    TaskValidationError,
    access_error,
)
from .ids import is_valid_task_id, sort_ids, validate_task_id
from .schema import DEFAULT_STATUS, IndexEntry
from .storage import HOD_DIR_NAME, atomic_write_text

logger = logging.getLogger("hod.index")

INDEX_FILE_NAME = "index.json"
_OPEN_STATUS = re.compile(r"^\S+$")

IndexSnapshot = Dict[str, IndexEntry]


# ========================================
# CYCLE DETECTION
# ========================================

def find_path(graph: Mapping[str, List[str]], start: str, target: str) -> Optional[List[str]]:
    """Depth-first search for a dependency path start -> ... -> target"""
    stack = [(start, [start])]
    visited = set()
    while stack:
        node, path = stack.pop()
        if node == target:
            return path
        if node in visited:
            continue
        visited.add(node)
        for dep in reversed(graph.get(node, [])):
            if dep not in visited:
                stack.append((dep, path + [dep]))
    return None


def check_new_dependencies(task_id: str, dependencies: List[str], graph: Mapping[str, List[str]]) -> None:
    """
    Raise CircularDependencyError if giving `task_id` these dependencies
    would close a cycle in `graph` (the other tasks' edges).
    """
    if task_id in dependencies:
        raise CircularDependencyError(f"Task {task_id} depends on itself", [task_id, task_id])

    edges = dict(graph)
    edges[task_id] = list(dependencies)
    for dep in dependencies:
        path = find_path(edges, dep, task_id)
        if path:
            cycle = [task_id] + path
            raise CircularDependencyError(
                f"Circular dependency detected: {' -> '.join(cycle)}", cycle
            )


def find_any_cycle(graph: Mapping[str, List[str]]) -> Optional[List[str]]:
    """Return one cycle of the whole graph, or None"""
    done = set()
    for root in sort_ids(graph):
        if root in done:
            continue
        # Explicit stack: dependency chains can be longer than the recursion limit
        path: List[str] = [root]
        on_path = {root}
        pending = [iter(graph.get(root, []))]
        while pending:
            dep = next(pending[-1], None)
            if dep is None:
                node = path.pop()
                on_path.discard(node)
                done.add(node)
                pending.pop()
            elif dep in on_path:
                return path[path.index(dep):] + [dep]
            elif dep not in done:
                path.append(dep)
                on_path.add(dep)
                pending.append(iter(graph.get(dep, [])))
    return None


class IndexStore:
    """
    Side-index of status and dependencies.

    `statuses` is the status vocabulary; None accepts any single-word status.
    """

    def __init__(self, tasks_dir: Union[str, Path], statuses: Optional[Iterable[str]] = None):
        self.tasks_dir = Path(tasks_dir)
        self.index_path = self.tasks_dir / HOD_DIR_NAME / INDEX_FILE_NAME
        self.statuses = list(statuses) if statuses is not None else None

    # ========================================
    # PERSISTENCE
    # ========================================

    def load(self) -> IndexSnapshot:
        """Full snapshot; an absent file is an empty index"""
        try:
            text = self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise access_error(e, f"Cannot read index {self.index_path}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise IndexCorruptionError(f"Index is not valid JSON: {self.index_path} ({e.msg})") from e

        if isinstance(data, list) and not data:
            return {}
        if not isinstance(data, dict):
            raise IndexCorruptionError(
                f"Invalid index format: expected an object, got {type(data).__name__}"
            )

        snapshot: IndexSnapshot = {}
        for task_id, raw in data.items():
            if not is_valid_task_id(task_id):
                raise IndexCorruptionError(f"Invalid task ID in index: '{task_id}'")
            if isinstance(raw, list):
                # Older indexes stored only the dependency list
                raw = {"status": DEFAULT_STATUS, "dependencies": raw}
            if not isinstance(raw, dict):
                raise IndexCorruptionError(f"Invalid index entry for task '{task_id}'")
            try:
                snapshot[task_id] = IndexEntry.model_validate(raw)
            except ValidationError as e:
                raise IndexCorruptionError(f"Invalid index entry for task '{task_id}': {e}") from e
        return snapshot

    def _save(self, snapshot: IndexSnapshot) -> None:
        data = {
            task_id: snapshot[task_id].model_dump()
            for task_id in sort_ids(snapshot)
        }
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self.index_path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
        except OSError as e:
            raise access_error(e, f"Cannot write index {self.index_path}") from e

    # ========================================
    # VALIDATION
    # ========================================

    def validate_status(self, status: str) -> None:
        if not status:
            raise TaskValidationError("Status cannot be empty")
        if self.statuses is not None:
            if status not in self.statuses:
                raise TaskValidationError(
                    f"Unknown status '{status}'. Allowed: {', '.join(self.statuses)}"
                )
        elif not _OPEN_STATUS.match(status):
            raise TaskValidationError(f"Invalid status '{status}': must be a single word")

    def _validate_entry(self, task_id: str, entry: IndexEntry) -> None:
        validate_task_id(task_id)
        for dep in entry.dependencies:
            validate_task_id(dep)
        self.validate_status(entry.status)

    # ========================================
    # MUTATIONS
    # ========================================

    def update(self, task_id: str, entry: IndexEntry) -> None:
        """Validate and store the entry for one task"""
        self._validate_entry(task_id, entry)

        snapshot = self.load()
        graph = {tid: e.dependencies for tid, e in snapshot.items() if tid != task_id}
        check_new_dependencies(task_id, entry.dependencies, graph)

        unknown = [dep for dep in entry.dependencies if dep not in snapshot]
        if unknown:
            logger.warning(f"Task {task_id} depends on unknown task(s): {', '.join(unknown)}")

        snapshot[task_id] = entry.model_copy(deep=True)
        self._save(snapshot)
        logger.debug(f"Index updated: {task_id} status={entry.status} deps={entry.dependencies}")

    def remove(self, task_id: str) -> None:
        """Drop the entry; a missing entry is not an error"""
        snapshot = self.load()
        if task_id not in snapshot:
            return
        del snapshot[task_id]
        self._save(snapshot)
        logger.debug(f"Index entry removed: {task_id}")

    def rebuild(self, entries: Mapping[str, IndexEntry]) -> None:
        """Replace the whole snapshot after validating every entry"""
        for task_id, entry in entries.items():
            self._validate_entry(task_id, entry)
            if task_id in entry.dependencies:
                raise CircularDependencyError(f"Task {task_id} depends on itself", [task_id, task_id])

        cycle = find_any_cycle({tid: e.dependencies for tid, e in entries.items()})
        if cycle:
            raise CircularDependencyError(
                f"Circular dependency detected: {' -> '.join(cycle)}", cycle
            )
        self._save({tid: e.model_copy(deep=True) for tid, e in entries.items()})
        logger.info(f"Index rebuilt with {len(entries)} entries")

    # ========================================
    # SCHEDULING
    # ========================================

    def get_next_tasks(
        self,
        done_statuses: Iterable[str],
        snapshot: Optional[IndexSnapshot] = None,
    ) -> List[str]:
        """
        IDs of tasks ready to start, in ID order.

        Ready: own status is not done, and every dependency is a known
        task whose status is done. Unknown dependencies are unmet.
        """
        done = set(done_statuses)
        if snapshot is None:
            snapshot = self.load()

        ready = []
        for task_id, entry in snapshot.items():
            if entry.status in done:
                continue
            if all(dep in snapshot and snapshot[dep].status in done for dep in entry.dependencies):
                ready.append(task_id)
        return sort_ids(ready)
