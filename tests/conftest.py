# tests/conftest.py

from pathlib import Path

import pytest

from hod.index import IndexStore
from hod.manager import TaskManager
from hod.schema import HodConfig
from hod.storage import ContentStore


@pytest.fixture()
def tasks_dir(tmp_path: Path) -> Path:
    path = tmp_path / "tasks"
    path.mkdir()
    return path


@pytest.fixture()
def config(tasks_dir: Path) -> HodConfig:
    """Title required, Description and Priority optional, Status defaulting to pending."""
    return HodConfig.model_validate(
        {
            "tasksDir": str(tasks_dir),
            "fields": {
                "Title": {"name": "title", "required": True},
                "Description": {"name": "description"},
                "Priority": {"name": "priority"},
                "Status": {"name": "status", "default": "pending"},
            },
            "doneStatus": "completed",
        }
    )


@pytest.fixture()
def content_store(tasks_dir: Path) -> ContentStore:
    return ContentStore(tasks_dir)


@pytest.fixture()
def index_store(tasks_dir: Path) -> IndexStore:
    return IndexStore(tasks_dir)


@pytest.fixture()
def manager(config: HodConfig) -> TaskManager:
    return TaskManager(config)
