"""
HOD - Error Types
=================
Every failure the stores and the mutation protocol can report.

Callers catch HodError to report a single message and a non-zero exit;
the subclasses map to the five failure kinds of the task store.
"""

import errno
from typing import List, Optional


class HodError(Exception):
    """Base class for all task store errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.rollback_errors: List[BaseException] = []


class TaskNotFoundError(HodError):
    """Operation on an unknown task ID"""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskExistsError(HodError):
    """Create on a task ID that already has a record"""

    def __init__(self, task_id: str):
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id


class StorageAccessError(HodError):
    """Storage medium is missing, unreadable or unwritable"""


class TaskFormatError(HodError):
    """Malformed task ID or malformed task content"""


class IndexCorruptionError(TaskFormatError):
    """Index snapshot is not valid JSON or has the wrong shape"""


class TaskValidationError(HodError):
    """Status outside the vocabulary, bad dependency, emptied required field"""


class CircularDependencyError(TaskValidationError):
    """Dependency self-reference or cycle"""

    def __init__(self, message: str, cycle: List[str]):
        super().__init__(message)
        self.cycle = cycle


class ConfigError(HodError):
    """Config file unreadable or invalid"""


class ConfigNotFoundError(ConfigError):
    """No hod.config.yml found"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Config not found (hod.config.yml). Run 'hod init' first")


# ========================================
# HELPERS
# ========================================

_ACCESS_ERRNOS = {
    errno.EACCES: "permission denied",
    errno.EPERM: "permission denied",
    errno.EROFS: "read-only file system",
    errno.EISDIR: "path is a directory",
    errno.ENOTDIR: "path is not a directory",
    errno.ENOSPC: "no space left on device",
}


def access_error(exc: OSError, context: str) -> StorageAccessError:
    """Translate an OSError into a StorageAccessError (raise it `from exc`)"""
    reason = _ACCESS_ERRNOS.get(exc.errno, exc.strerror or str(exc))
    return StorageAccessError(f"{context}: {reason}")


def attach_rollback_error(error: BaseException, rollback_error: BaseException) -> None:
    """Chain a failed compensation onto the error that triggered it"""
    errors = getattr(error, "rollback_errors", None)
    if errors is None:
        errors = []
        try:
            error.rollback_errors = errors  # type: ignore[attr-defined]
        except AttributeError:
            errors = None
    if errors is not None:
        errors.append(rollback_error)
    if error.__cause__ is None:
        error.__cause__ = rollback_error
