"""Ready-task resolution across both stores."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from .index import IndexStore
from .storage import ContentStore

logger = logging.getLogger("hod.resolver")


@dataclass
class ResolveResult:
    ready: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def resolve_next_tasks(
    content: ContentStore,
    index: IndexStore,
    done_statuses: Iterable[str],
) -> ResolveResult:
    """
    Tasks ready to start that also have a content record.

    Index entries without content are reported and skipped.
    """
    candidates = index.get_next_tasks(done_statuses)
    if not candidates:
        return ResolveResult()

    known = set(content.list_ids())
    result = ResolveResult()
    for task_id in candidates:
        if task_id in known:
            result.ready.append(task_id)
        else:
            message = f"Task {task_id} is in the index but has no content record"
            logger.warning(message)
            result.warnings.append(message)
    return result
