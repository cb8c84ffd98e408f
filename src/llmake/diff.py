"""Change detection between the current file set and a task's lock entry."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from .lock import TaskLockEntry

logger = logging.getLogger(__name__)


@dataclass
class TaskDiff:
    """Result of comparing a task's sources against its lock entry."""

    task: str
    changed: bool
    changed_files: list[str] = field(default_factory=list)  # New or modified
    removed_files: list[str] = field(default_factory=list)
    all_files: list[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        """Total number of changed and removed files."""
        return len(self.changed_files) + len(self.removed_files)


def diff_task(
    task_name: str,
    current_files: Mapping[str, str],
    current_root: str,
    entry: TaskLockEntry | None,
) -> TaskDiff:
    """
    Decide whether a task is stale and which files changed.

    Args:
        task_name: Name of the task being diffed
        current_files: Mapping of path to digest for the resolved sources
        current_root: Merkle root of current_files
        entry: The task's lock entry, or None if it has never run

    Returns:
        TaskDiff with sorted changed and removed file lists
    """
    all_files = sorted(current_files)

    # Never run: everything is new
    if entry is None:
        return TaskDiff(
            task=task_name,
            changed=True,
            changed_files=list(all_files),
            all_files=all_files,
        )

    # Quick check: root match means nothing changed, skip per-file walk
    if entry.sources_hash == current_root:
        return TaskDiff(task=task_name, changed=False, all_files=all_files)

    recorded = entry.files
    changed_files = [path for path in all_files if recorded.get(path) != current_files[path]]
    removed_files = sorted(path for path in recorded if path not in current_files)

    changed = bool(changed_files or removed_files)
    if not changed:
        # Recorded root disagrees with recorded files; rerun to be safe
        logger.warning(
            "Task %s: sources hash differs from lock (%s != %s) but no file differs",
            task_name,
            entry.sources_hash,
            current_root,
        )
        changed = True

    return TaskDiff(
        task=task_name,
        changed=changed,
        changed_files=changed_files,
        removed_files=removed_files,
        all_files=all_files,
    )
