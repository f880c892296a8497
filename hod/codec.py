"""
HOD - Content Codec
===================
Text forms of a TaskContent.

Markdown (legacy):          JSON (current):
    # Title                     {
    Write docs                    "title": "Write docs",
                                  "priority": "high"
    # Priority                  }
    high

Status and dependencies live in the index, so both forms ignore them.
"""

import json
import re
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError

from .errors import TaskFormatError
from .schema import INDEX_KEYS, TaskContent

_HEADING = re.compile(r"^#\s+(.+)$")


def build_content(data: Dict[str, Any]) -> TaskContent:
    """
    Build a TaskContent from a flat mapping.

    `title` and `description` are standard keys, everything else is a
    custom field. Non-string custom values raise TaskFormatError.
    """
    if not isinstance(data.get("title"), str):
        raise TaskFormatError("Missing required field 'title' or it is not a string")
    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise TaskFormatError("Field 'description' must be a string")

    fields = {}
    for key, value in data.items():
        if key.lower() in ("title", "description") or key.lower() in INDEX_KEYS:
            continue
        if value is None:
            continue
        if not isinstance(value, str):
            kind = "array" if isinstance(value, (list, tuple)) else type(value).__name__
            raise TaskFormatError(f"Field '{key}' must be a string, got {kind}")
        fields[key.lower()] = value

    try:
        return TaskContent(title=data["title"], description=description, fields=fields)
    except ValidationError as e:
        raise TaskFormatError(_first_issue(e)) from e


def _first_issue(error: ValidationError) -> str:
    issue = error.errors()[0]
    message = str(issue.get("msg", error))
    return message.replace("Value error, ", "")


# ========================================
# MARKDOWN
# ========================================

def _parse_sections(markdown: str) -> List[Tuple[str, str]]:
    sections: List[Tuple[str, str]] = []
    seen = set()
    key = None
    lines: List[str] = []

    def flush():
        # First occurrence of a heading wins, even when its body is empty
        if key is not None and key not in seen:
            seen.add(key)
            value = "\n".join(lines).strip()
            if value:
                sections.append((key, value))

    for line in markdown.split("\n"):
        match = _HEADING.match(line)
        if match:
            flush()
            key = match.group(1).strip()
            lines = []
        elif key is not None:
            lines.append(line)
    flush()
    return sections


def parse_markdown(markdown: str) -> TaskContent:
    """Parse the `# Key` / value form"""
    text = markdown.strip()
    if not text:
        raise TaskFormatError("Empty task content")

    sections = dict(_parse_sections(text))
    if "Title" not in sections:
        raise TaskFormatError("Missing required section: Title")

    data: Dict[str, Any] = {"title": sections.pop("Title")}
    if "Description" in sections:
        data["description"] = sections.pop("Description")
    for key, value in sections.items():
        if key in ("Status", "Dependencies"):
            continue
        data[key.lower()] = value
    return build_content(data)


def serialize_markdown(content: TaskContent) -> str:
    parts = ["# Title", content.title]
    if content.description:
        parts.extend(["", "# Description", content.description])
    for key in sorted(content.fields):
        parts.extend(["", f"# {key}", content.fields[key]])
    return "\n".join(parts) + "\n"


# ========================================
# JSON
# ========================================

def parse_json(text: str) -> TaskContent:
    """Parse the JSON object form"""
    text = text.strip()
    if not text:
        raise TaskFormatError("Empty task content")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TaskFormatError(f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}") from e
    if not isinstance(data, dict):
        raise TaskFormatError("Task JSON must be an object")
    return build_content(data)


def serialize_json(content: TaskContent) -> str:
    data: Dict[str, str] = {"title": content.title}
    if content.description:
        data["description"] = content.description
    for key in sorted(content.fields):
        data[key] = content.fields[key]
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def is_json_content(text: str) -> bool:
    return text.lstrip().startswith("{")


def parse_content(text: str) -> TaskContent:
    """Auto-detect the form: JSON when the text starts with '{'"""
    if is_json_content(text):
        return parse_json(text)
    return parse_markdown(text)
