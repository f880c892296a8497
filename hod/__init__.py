"""
HOD - Hierarchical Task Store
=============================

File-backed task lists with dotted IDs (1, 1.2, 1.2.3), dependencies and
a ready-to-start resolver. Task text lives in one JSON file per task;
status and dependencies live in a separate index kept consistent by
compensating steps.

Usage:
    from hod import TaskManager

    manager = TaskManager.from_config()      # finds hod.config.yml
    backend = manager.add_task({"title": "Backend"})
    schema = manager.add_task({"title": "Schema"}, parent=backend)
    manager.add_task({"title": "API"}, dependencies=[schema])

    manager.next_tasks().ready               # ["1", "1.1"]
    manager.mark_done(schema)
"""

from .config import create_default_config, load_config
from .errors import (
    CircularDependencyError,
    ConfigError,
    ConfigNotFoundError,
    HodError,
    IndexCorruptionError,
    StorageAccessError,
    TaskExistsError,
    TaskFormatError,
    TaskNotFoundError,
    TaskValidationError,
)
from .ids import compare_ids, direct_children_of, sort_ids
from .index import IndexStore
from .manager import TaskManager, TaskRecord
from .schema import HodConfig, IndexEntry, TaskContent
from .storage import ContentStore

__version__ = "1.0.0"
__all__ = [
    "TaskManager",
    "TaskRecord",
    "ContentStore",
    "IndexStore",
    "TaskContent",
    "IndexEntry",
    "HodConfig",
    "load_config",
    "create_default_config",
    "compare_ids",
    "sort_ids",
    "direct_children_of",
    "HodError",
    "TaskNotFoundError",
    "TaskExistsError",
    "StorageAccessError",
    "TaskFormatError",
    "IndexCorruptionError",
    "TaskValidationError",
    "CircularDependencyError",
    "ConfigError",
    "ConfigNotFoundError",
]
