"""
HOD - Content Store
===================
One file per task under the tasks directory:

    tasks/1.json        current form
    tasks/1.2.md        legacy markdown form, read-only fallback
    tasks/.hod/         index (see index.py), ignored here

Every write goes to a temp file in the same directory and is renamed
into place, so a crash never leaves a truncated record.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .codec import parse_json, parse_markdown, serialize_json
from .errors import (
    StorageAccessError,
    TaskExistsError,
    TaskFormatError,
    TaskNotFoundError,
    access_error,
)
from .ids import is_valid_task_id, sort_ids, validate_task_id
from .schema import TaskContent

logger = logging.getLogger("hod.storage")

HOD_DIR_NAME = ".hod"
JSON_SUFFIX = ".json"
MD_SUFFIX = ".md"
TMP_SUFFIX = ".tmp"


def atomic_write_text(path: Path, text: str) -> None:
    """Write to a temp file next to `path`, fsync, then os.replace"""
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=TMP_SUFFIX)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _extract_id(filename: str) -> Optional[str]:
    if filename.endswith(TMP_SUFFIX):
        return None
    for suffix in (JSON_SUFFIX, MD_SUFFIX):
        if filename.endswith(suffix):
            task_id = filename[: -len(suffix)]
            return task_id if is_valid_task_id(task_id) else None
    return None


class ContentStore:
    """
    Content records keyed by task ID.

    Records are TaskContent values; the on-disk text is handled by the
    codec. The store never touches status or dependencies.
    """

    def __init__(self, tasks_dir: Union[str, Path]):
        self.tasks_dir = Path(tasks_dir)

    # ========================================
    # PATHS
    # ========================================

    def _json_path(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}{JSON_SUFFIX}"

    def _md_path(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}{MD_SUFFIX}"

    def _ensure_dir(self) -> None:
        try:
            self.tasks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise access_error(e, f"Cannot create tasks directory {self.tasks_dir}") from e

    # ========================================
    # CRUD
    # ========================================

    def exists(self, task_id: str) -> bool:
        if not is_valid_task_id(task_id):
            return False
        return self._json_path(task_id).is_file() or self._md_path(task_id).is_file()

    def read_raw(self, task_id: str) -> Tuple[str, str]:
        """Return (text, suffix) of the stored record, JSON form first"""
        validate_task_id(task_id)
        for path in (self._json_path(task_id), self._md_path(task_id)):
            try:
                return path.read_text(encoding="utf-8"), path.suffix
            except FileNotFoundError:
                continue
            except OSError as e:
                raise access_error(e, f"Cannot read task {task_id}") from e
        raise TaskNotFoundError(task_id)

    def read(self, task_id: str) -> TaskContent:
        text, suffix = self.read_raw(task_id)
        try:
            if suffix == JSON_SUFFIX:
                return parse_json(text)
            return parse_markdown(text)
        except TaskFormatError as e:
            raise TaskFormatError(f"Task {task_id}: {e.message}") from e

    def create(self, task_id: str, content: TaskContent) -> None:
        validate_task_id(task_id)
        if self.exists(task_id):
            raise TaskExistsError(task_id)
        self._ensure_dir()
        self._write(task_id, content)
        logger.debug(f"Created content record {task_id}")

    def update(self, task_id: str, content: TaskContent) -> None:
        validate_task_id(task_id)
        if not self.exists(task_id):
            raise TaskNotFoundError(task_id)
        self._write(task_id, content)
        # The JSON record now supersedes a legacy markdown twin
        try:
            self._md_path(task_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove legacy record {self._md_path(task_id)}: {e}")
        logger.debug(f"Updated content record {task_id}")

    def delete(self, task_id: str) -> None:
        validate_task_id(task_id)
        if not self.exists(task_id):
            raise TaskNotFoundError(task_id)
        for path in (self._json_path(task_id), self._md_path(task_id)):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise access_error(e, f"Cannot delete task {task_id}") from e
        logger.debug(f"Deleted content record {task_id}")

    def _write(self, task_id: str, content: TaskContent) -> None:
        try:
            atomic_write_text(self._json_path(task_id), serialize_json(content))
        except OSError as e:
            raise access_error(e, f"Cannot write task {task_id}") from e

    # ========================================
    # LISTING
    # ========================================

    def list_ids(self) -> List[str]:
        """All stored task IDs in ID order; raises if the directory is unusable"""
        try:
            names = os.listdir(self.tasks_dir)
        except FileNotFoundError as e:
            raise StorageAccessError(f"Tasks directory does not exist: {self.tasks_dir}") from e
        except OSError as e:
            raise access_error(e, f"Cannot read tasks directory {self.tasks_dir}") from e

        ids = set()
        for name in names:
            if name == HOD_DIR_NAME:
                continue
            task_id = _extract_id(name)
            if task_id is not None:
                ids.add(task_id)
        return sort_ids(ids)

    def list(self) -> List[Tuple[str, TaskContent]]:
        """(id, content) for every readable record, in ID order"""
        records = []
        for task_id in self.list_ids():
            try:
                records.append((task_id, self.read(task_id)))
            except TaskNotFoundError:
                # Removed between listdir and read
                continue
            except (TaskFormatError, StorageAccessError) as e:
                logger.warning(f"Skipping task {task_id}: {e.message}")
        return records

    # ========================================
    # MIGRATION
    # ========================================

    def migrate(self, task_id: str) -> bool:
        """Rewrite a legacy markdown record as JSON; False if already JSON"""
        text, suffix = self.read_raw(task_id)
        if suffix == JSON_SUFFIX:
            return False
        try:
            content = parse_markdown(text)
        except TaskFormatError as e:
            raise TaskFormatError(f"Task {task_id}: {e.message}") from e
        self.update(task_id, content)
        logger.info(f"Migrated task {task_id} to JSON")
        return True
