"""
HOD - Task Manager
==================
Every mutation touches two stores: the content record (storage.py) and
the status/dependency index (index.py). The manager runs each mutation
as a fixed sequence of steps with compensations (saga.py), so a failure
half-way puts the first store back the way it was.

    add     content.create -> index.update
    update  content.update -> index.update
    delete  content.read -> content.delete -> index.remove
    move    content.create(new) -> index.update(new)
            -> content.delete(old) -> index.remove(old)

If a compensation itself fails, the stores disagree until `reconcile`
(hod sync) is run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .codec import build_content
from .config import load_config
from .errors import (
    CircularDependencyError,
    TaskNotFoundError,
    TaskValidationError,
    access_error,
)
from .ids import depth, direct_children_of, next_child_id, next_main_id, parent_of, validate_task_id
from .index import IndexSnapshot, IndexStore
from .resolver import ResolveResult, resolve_next_tasks
from .saga import Saga
from .schema import HodConfig, IndexEntry, TaskContent
from .storage import ContentStore
from .tree import TreeBuildResult, build_tree

logger = logging.getLogger("hod.manager")

STATUS_KEY = "Status"
MAX_ID_ATTEMPTS = 100


@dataclass
class TaskRecord:
    """A task as seen through both stores"""
    id: str
    content: TaskContent
    entry: Optional[IndexEntry] = None
    subtasks: List[str] = field(default_factory=list)

    @property
    def status(self) -> Optional[str]:
        return self.entry.status if self.entry else None

    @property
    def dependencies(self) -> List[str]:
        return list(self.entry.dependencies) if self.entry else []


@dataclass
class ReconcileReport:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def parse_dependencies(value: Optional[str]) -> List[str]:
    """'1, 2,3' -> ['1', '2', '3']"""
    if not value or not value.strip():
        return []
    return [dep.strip() for dep in value.split(",") if dep.strip()]


class TaskManager:
    """
    Mutation protocol over the content store and the index store.

    Both stores are reloaded on every call; the manager holds no task state.
    """

    def __init__(
        self,
        config: HodConfig,
        content: Optional[ContentStore] = None,
        index: Optional[IndexStore] = None,
    ):
        self.config = config
        self.tasks_dir = Path(config.tasks_dir)
        try:
            self.tasks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise access_error(e, f"Cannot create tasks directory {self.tasks_dir}") from e
        self.content = content or ContentStore(self.tasks_dir)
        self.index = index or IndexStore(self.tasks_dir, config.statuses)

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "TaskManager":
        return cls(load_config(path))

    # ========================================
    # FIELD HANDLING
    # ========================================

    def _split_fields(self, values: Dict[str, str]) -> Tuple[Dict[str, str], Optional[str]]:
        """
        Map CLI field names to content keys.

        Returns (content values keyed by lower-case markdown key, status).
        """
        content_values: Dict[str, str] = {}
        status = None
        for name, value in values.items():
            key = self.config.key_for_name(name)
            if key is None:
                raise TaskValidationError(
                    f"Unknown field `{name}`. Available fields: {', '.join(self.config.field_names)}"
                )
            value = value.strip() if value is not None else ""
            if key == STATUS_KEY:
                status = value
            else:
                content_values[key.lower()] = value
        return content_values, status

    def _check_required(self, values: Dict[str, str]) -> None:
        for key, field_config in self.config.fields.items():
            if key == STATUS_KEY or not field_config.required:
                continue
            if not values.get(key.lower()):
                raise TaskValidationError(
                    f"Required field '{key}' is missing or empty. "
                    f"Use --{field_config.name} \"value\""
                )

    def _is_required(self, content_key: str) -> bool:
        for key, field_config in self.config.fields.items():
            if key.lower() == content_key:
                return field_config.required
        return False

    @staticmethod
    def _content_values(content: TaskContent) -> Dict[str, str]:
        values = {"title": content.title}
        if content.description:
            values["description"] = content.description
        values.update(content.fields)
        return values

    def _require_task(self, task_id: str) -> None:
        validate_task_id(task_id)
        if not self.content.exists(task_id):
            raise TaskNotFoundError(task_id)

    def _current_entry(self, task_id: str, snapshot: Optional[IndexSnapshot] = None) -> IndexEntry:
        if snapshot is None:
            snapshot = self.index.load()
        entry = snapshot.get(task_id)
        if entry is None:
            logger.warning(f"Task {task_id} has no index entry; using status '{self.config.default_status}'")
            return IndexEntry(status=self.config.default_status)
        return entry.model_copy(deep=True)

    # ========================================
    # ID GENERATION
    # ========================================

    def _validate_parent(self, parent: str) -> str:
        parent = parent.strip()
        if not parent:
            raise TaskValidationError("Parent task ID cannot be empty")
        validate_task_id(parent)
        if depth(parent) != 1:
            raise TaskValidationError(
                f"Parent task '{parent}' is a subtask. Only top-level tasks can have subtasks"
            )
        if not self.content.exists(parent):
            raise TaskValidationError(f"Parent task '{parent}' does not exist")
        return parent

    def _generate_subtask_id(self, parent: str) -> str:
        # Re-list on every attempt; another invocation may have taken the slot
        for attempt in range(MAX_ID_ATTEMPTS):
            candidate = next_child_id(parent, self.content.list_ids(), attempt)
            if not self.content.exists(candidate):
                return candidate
        raise TaskValidationError(f"Could not find a free subtask ID under '{parent}'")

    # ========================================
    # MUTATIONS
    # ========================================

    def add_task(
        self,
        fields: Dict[str, str],
        dependencies: Optional[List[str]] = None,
        parent: Optional[str] = None,
    ) -> str:
        """Create a task in both stores; return its new ID"""
        values, status = self._split_fields(fields)

        if parent is not None:
            parent = self._validate_parent(parent)

        for key, field_config in self.config.fields.items():
            if field_config.default is None or key == STATUS_KEY:
                continue
            if not values.get(key.lower()):
                values[key.lower()] = field_config.default
        self._check_required(values)

        deps = list(dependencies or [])
        if parent is not None:
            task_id = self._generate_subtask_id(parent)
            if parent in deps:
                raise CircularDependencyError(
                    f"A subtask cannot depend on its parent task '{parent}'", [parent, task_id]
                )
        else:
            task_id = next_main_id(self.content.list_ids())

        content = build_content({k: v for k, v in values.items() if v})
        entry = IndexEntry(status=status or self.config.default_status, dependencies=deps)

        saga = Saga(f"add task {task_id}")
        saga.step("create content", lambda: self.content.create(task_id, content),
                  compensate=lambda: self.content.delete(task_id))
        saga.step("update index", lambda: self.index.update(task_id, entry))
        saga.run()

        logger.info(f"Added task {task_id}: {content.title}")
        return task_id

    def update_task(
        self,
        task_id: str,
        fields: Dict[str, str],
        dependencies: Optional[List[str]] = None,
    ) -> str:
        """
        Replace field values.

        An empty value removes an optional field; `dependencies=[]` clears
        the dependency list while None leaves it untouched.
        """
        self._require_task(task_id)
        values, status = self._split_fields(fields)
        if status is not None and not status:
            raise TaskValidationError("Field 'Status' cannot be empty")

        previous = self.content.read(task_id)
        updated = self._content_values(previous)
        for key, value in values.items():
            if value:
                updated[key] = value
            elif self._is_required(key):
                raise TaskValidationError(f"Field '{key}' cannot be empty")
            else:
                updated.pop(key, None)
        self._check_required(updated)
        content = build_content(updated)

        entry = self._current_entry(task_id)
        if status is not None:
            entry.status = status
        if dependencies is not None:
            entry = IndexEntry(status=entry.status, dependencies=dependencies)

        self._rewrite(task_id, previous, content, entry, "update")
        logger.info(f"Updated task {task_id}")
        return task_id

    def append_task(self, task_id: str, fields: Dict[str, str]) -> str:
        """Append values to existing fields, separated by a newline"""
        self._require_task(task_id)
        if "dependencies" in fields:
            raise TaskValidationError(
                "Cannot append to system field 'Dependencies': it lives in the index"
            )
        values, status = self._split_fields(fields)
        if status is not None:
            raise TaskValidationError("Cannot append to system field 'Status': it lives in the index")
        for key, value in values.items():
            if not value and self._is_required(key):
                raise TaskValidationError(f"Field '{key}' cannot be empty")

        previous = self.content.read(task_id)
        updated = self._content_values(previous)
        for key, value in values.items():
            if not value:
                continue
            current = updated.get(key)
            updated[key] = f"{current}\n{value}" if current else value
        self._check_required(updated)
        content = build_content(updated)

        # Index entry is rewritten unchanged to keep both stores in step
        entry = self._current_entry(task_id)
        self._rewrite(task_id, previous, content, entry, "append")
        logger.info(f"Appended to task {task_id}")
        return task_id

    def _rewrite(
        self,
        task_id: str,
        previous: TaskContent,
        content: TaskContent,
        entry: IndexEntry,
        verb: str,
    ) -> None:
        saga = Saga(f"{verb} task {task_id}")
        saga.step("update content", lambda: self.content.update(task_id, content),
                  compensate=lambda: self.content.update(task_id, previous))
        saga.step("update index", lambda: self.index.update(task_id, entry))
        saga.run()

    def mark_done(self, task_id: str) -> bool:
        """Set the primary done status; True if the task was already done"""
        self._require_task(task_id)
        entry = self._current_entry(task_id)
        if entry.status in self.config.done_statuses:
            logger.info(f"Task {task_id} is already {entry.status}")
            return True
        entry.status = self.config.primary_done_status
        self.index.update(task_id, entry)
        logger.info(f"Completed task {task_id}")
        return False

    def delete_task(self, task_id: str, recursive: bool = False) -> List[str]:
        """
        Delete a task from both stores.

        Tasks with subtasks need `recursive`; subtasks then go first, each
        on its own (content, then index). Returns every deleted ID.
        """
        self._require_task(task_id)
        all_ids = self.content.list_ids()
        children = direct_children_of(task_id, all_ids)
        if children and not recursive:
            raise TaskValidationError(
                f"Task {task_id} has subtasks: {', '.join(children)}. "
                "Use recursive delete (-r) to remove them too"
            )

        deleted: List[str] = []
        for child in children:
            self._delete_subtree(child, all_ids, deleted)

        saved: Dict[str, TaskContent] = {}

        def read_content():
            saved["content"] = self.content.read(task_id)

        saga = Saga(f"delete task {task_id}")
        saga.step("read content", read_content)
        saga.step("delete content", lambda: self.content.delete(task_id),
                  compensate=lambda: self.content.create(task_id, saved["content"]))
        saga.step("remove from index", lambda: self.index.remove(task_id))
        saga.run()

        deleted.append(task_id)
        logger.info(f"Deleted task(s): {', '.join(deleted)}")
        return deleted

    def _delete_subtree(self, task_id: str, all_ids: List[str], deleted: List[str]) -> None:
        for child in direct_children_of(task_id, all_ids):
            self._delete_subtree(child, all_ids, deleted)
        # Not compensated: a failure here is repaired with `hod sync`
        self.content.delete(task_id)
        self.index.remove(task_id)
        deleted.append(task_id)

    def move_task(self, task_id: str, parent: str) -> str:
        """
        Re-parent a task under a top-level task; returns the new ID.

        Moving to the current parent is a no-op that returns the old ID.
        """
        validate_task_id(task_id)
        if not parent or not parent.strip():
            raise TaskValidationError("A target parent is required for move")
        parent = parent.strip()
        validate_task_id(parent)

        if not self.content.exists(task_id):
            raise TaskNotFoundError(task_id)
        if not self.content.exists(parent):
            raise TaskValidationError(f"Parent task {parent} does not exist")
        if depth(parent) != 1:
            raise TaskValidationError(
                f"Task {parent} is a subtask. Only top-level tasks can be parents"
            )
        if parent == task_id:
            raise TaskValidationError(f"Task {task_id} cannot be moved under itself")
        if parent_of(task_id) == parent:
            logger.info(f"Task {task_id} is already under {parent}")
            return task_id

        if direct_children_of(task_id, self.content.list_ids()):
            raise TaskValidationError(
                f"Task {task_id} has subtasks. Moving tasks with subtasks is not supported"
            )

        content = self.content.read(task_id)
        snapshot = self.index.load()
        entry = self._current_entry(task_id, snapshot)
        new_id = self._generate_subtask_id(parent)

        saga = Saga(f"move task {task_id} -> {new_id}")
        saga.step("create new content", lambda: self.content.create(new_id, content),
                  compensate=lambda: self.content.delete(new_id))
        saga.step("index new id", lambda: self.index.update(new_id, entry),
                  compensate=lambda: self.index.remove(new_id))
        saga.step("delete old content", lambda: self.content.delete(task_id),
                  compensate=lambda: self.content.create(task_id, content))
        saga.step("remove old id from index", lambda: self.index.remove(task_id))
        saga.run()

        dependents = [tid for tid, e in snapshot.items() if task_id in e.dependencies]
        if dependents:
            logger.warning(
                f"Task(s) {', '.join(dependents)} still depend on the old ID {task_id}"
            )
        logger.info(f"Moved task {task_id} -> {new_id}")
        return new_id

    def reconcile(self) -> ReconcileReport:
        """Rebuild the index from the content records (hod sync)"""
        ids = self.content.list_ids()
        snapshot = self.index.load()
        report = ReconcileReport()

        entries: Dict[str, IndexEntry] = {}
        for task_id in ids:
            if task_id in snapshot:
                entries[task_id] = snapshot[task_id]
            else:
                entries[task_id] = IndexEntry(status=self.config.default_status)
                report.added.append(task_id)
        report.removed = [task_id for task_id in snapshot if task_id not in entries]

        if report.changed:
            self.index.rebuild(entries)
            logger.info(f"Reconciled index: added {report.added}, removed {report.removed}")
        return report

    # ========================================
    # QUERIES
    # ========================================

    def get_task(self, task_id: str) -> TaskRecord:
        validate_task_id(task_id)
        content = self.content.read(task_id)
        entry = self.index.load().get(task_id)
        subtasks = direct_children_of(task_id, self.content.list_ids())
        return TaskRecord(id=task_id, content=content, entry=entry, subtasks=subtasks)

    def list_tasks(self, filters: Optional[Dict[str, str]] = None) -> List[TaskRecord]:
        """
        Tasks with both a content record and an index entry, in ID order.

        `filters` maps CLI field names to exact values.
        """
        filters = filters or {}
        for name in filters:
            if self.config.key_for_name(name) is None:
                raise TaskValidationError(
                    f"Unknown field `{name}`. Available fields: {', '.join(self.config.field_names)}"
                )

        snapshot = self.index.load()
        records = []
        for task_id, content in self.content.list():
            entry = snapshot.get(task_id)
            if entry is None:
                logger.warning(f"Task {task_id} has no index entry; run 'hod sync'")
                continue
            if self._matches(content, entry, filters):
                records.append(TaskRecord(id=task_id, content=content, entry=entry))
        return records

    def _matches(self, content: TaskContent, entry: IndexEntry, filters: Dict[str, str]) -> bool:
        for name, expected in filters.items():
            key = self.config.key_for_name(name)
            if key == STATUS_KEY:
                actual = entry.status
            else:
                actual = content.get(key)
            if actual != expected:
                return False
        return True

    def next_tasks(self) -> ResolveResult:
        return resolve_next_tasks(self.content, self.index, self.config.done_statuses)

    def build_tree(self, records: Optional[List[TaskRecord]] = None) -> TreeBuildResult:
        if records is None:
            pairs = [(task_id, content.title) for task_id, content in self.content.list()]
        else:
            pairs = [(record.id, record.content.title) for record in records]
        return build_tree(pairs, self.index.load())
