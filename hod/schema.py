"""
HOD - Schema Definition
=======================
Content records, index entries and project configuration.

Content and index are stored apart: a TaskContent never carries status
or dependencies, an IndexEntry never carries text.
"""

import re
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_STATUS = "pending"
DEFAULT_DONE_STATUS = "completed"

# Keys reserved for the index; dropped when they show up in content
INDEX_KEYS = ("status", "dependencies")

MARKDOWN_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,50}$")
FIELD_NAME_PATTERN = re.compile(r"^[a-z0-9-]{1,50}$")


class TaskContent(BaseModel):
    """Content record: title, optional description, custom string fields"""
    title: str
    description: Optional[str] = None
    fields: Dict[str, str] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _title_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("fields", mode="before")
    @classmethod
    def _string_fields_only(cls, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("custom fields must be a mapping")
        cleaned = {}
        for key, item in value.items():
            if item is None:
                continue
            if not isinstance(item, str):
                kind = "array" if isinstance(item, (list, tuple)) else type(item).__name__
                raise ValueError(f"custom field '{key}' must be a string, got {kind}")
            key = str(key).lower()
            if key in ("title", "description") or key in INDEX_KEYS:
                continue
            item = item.strip()
            if item:
                cleaned[key] = item
        return cleaned

    def get(self, key: str) -> Optional[str]:
        """Look up any field by lower-case name"""
        key = key.lower()
        if key == "title":
            return self.title
        if key == "description":
            return self.description
        return self.fields.get(key)


class IndexEntry(BaseModel):
    """Status and dependency set of one task"""
    status: str = DEFAULT_STATUS
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def _strip_status(cls, value: str) -> str:
        return value.strip()

    @field_validator("dependencies", mode="before")
    @classmethod
    def _normalize_dependencies(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        seen = []
        for dep in value:
            dep = str(dep).strip()
            if dep and dep not in seen:
                seen.append(dep)
        return seen


# ============================================================
# PROJECT CONFIGURATION
# ============================================================

class FieldConfig(BaseModel):
    """One configured field: markdown key -> CLI name"""
    model_config = ConfigDict(extra="forbid")

    name: str
    required: bool = False
    default: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _kebab_case(cls, value: str) -> str:
        if not FIELD_NAME_PATTERN.match(value):
            raise ValueError("name must be kebab-case (lowercase letters, numbers, hyphens only)")
        return value

    @model_validator(mode="after")
    def _required_has_no_default(self) -> "FieldConfig":
        if self.required and self.default is not None:
            raise ValueError("field with required: true cannot have a default value")
        return self


class HodConfig(BaseModel):
    """Contents of hod.config.yml"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    tasks_dir: str = Field(alias="tasksDir")
    fields: Dict[str, FieldConfig]
    done_status: Union[str, List[str]] = Field(default=DEFAULT_DONE_STATUS, alias="doneStatus")
    statuses: Optional[List[str]] = None

    @field_validator("tasks_dir")
    @classmethod
    def _tasks_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tasksDir cannot be empty")
        return value

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, value: Dict[str, FieldConfig]) -> Dict[str, FieldConfig]:
        if not value:
            raise ValueError("fields must contain at least one field")
        names: Dict[str, str] = {}
        for key, field in value.items():
            if not MARKDOWN_KEY_PATTERN.match(key):
                raise ValueError(
                    f"markdown key '{key}' must contain only letters, numbers, "
                    "hyphens and underscores"
                )
            if field.name in names:
                raise ValueError(
                    f"duplicate name '{field.name}' used by fields '{names[field.name]}' and '{key}'"
                )
            names[field.name] = key

        description = value.get("Description")
        if description is None:
            value = dict(value)
            value["Description"] = FieldConfig(name="description")
        elif description.name != "description":
            raise ValueError(
                f"field 'Description' must have name='description', but found '{description.name}'"
            )
        return value

    @field_validator("done_status")
    @classmethod
    def _done_status_not_empty(cls, value):
        values = [value] if isinstance(value, str) else value
        if not values or any(not v.strip() for v in values):
            raise ValueError("doneStatus must be a non-empty string or a non-empty list")
        return value

    @model_validator(mode="after")
    def _vocabulary_covers_defaults(self) -> "HodConfig":
        if self.statuses is None:
            return self
        missing = [s for s in self.done_statuses + [self.default_status] if s not in self.statuses]
        if missing:
            raise ValueError(f"statuses must include {', '.join(sorted(set(missing)))}")
        return self

    @property
    def done_statuses(self) -> List[str]:
        if isinstance(self.done_status, str):
            return [self.done_status]
        return list(self.done_status)

    @property
    def primary_done_status(self) -> str:
        return self.done_statuses[0]

    @property
    def default_status(self) -> str:
        status_field = self.fields.get("Status")
        if status_field and status_field.default:
            return status_field.default
        return DEFAULT_STATUS

    def key_for_name(self, name: str) -> Optional[str]:
        """Markdown key for a CLI field name"""
        for key, field in self.fields.items():
            if field.name == name:
                return key
        return None

    @property
    def field_names(self) -> List[str]:
        return [field.name for field in self.fields.values()]
