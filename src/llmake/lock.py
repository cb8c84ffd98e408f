"""Lockfile management for llmake."""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from . import LOCK_FILE

logger = logging.getLogger(__name__)


class TaskLockEntry(BaseModel):
    """State of a task's sources as of its last successful run."""

    last_run: str  # ISO-8601, kept exactly as written
    sources_hash: str  # Merkle root over files
    files: dict[str, str] = Field(default_factory=dict)

    @field_validator("last_run")
    @classmethod
    def last_run_is_iso(cls, value: str) -> str:
        datetime.fromisoformat(value)
        return value


class Lock(BaseModel):
    """Per-task lock entries, persisted next to the config file."""

    version: Literal[1] = 1
    tasks: dict[str, TaskLockEntry] = Field(default_factory=dict)


def get_lock_path(config_path: Path) -> Path:
    """Get the lockfile path for a config file."""
    return config_path.parent / LOCK_FILE


def format_timestamp(moment: datetime) -> str:
    """Format a UTC timestamp as ISO-8601 with milliseconds and a Z suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_entry(
    sources_hash: str,
    files: Mapping[str, str],
    last_run: datetime | None = None,
) -> TaskLockEntry:
    """Create a lock entry for a task that just ran successfully."""
    return TaskLockEntry(
        last_run=format_timestamp(last_run or datetime.now(UTC)),
        sources_hash=sources_hash,
        files=dict(files),
    )


def load_lock(lock_path: Path) -> Lock:
    """Load the lockfile.

    Returns an empty lock if the file doesn't exist or can't be parsed.
    """
    if not lock_path.exists():
        return Lock()

    try:
        with open(lock_path, encoding="utf-8") as f:
            data = json.load(f)
        return Lock.model_validate(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Ignoring unreadable lockfile %s: %s", lock_path, e)
        return Lock()


def dump_lock(lock: Lock) -> str:
    """Serialize a lock as stable, pretty-printed JSON.

    Task names and file paths are emitted in sorted order so unchanged
    state always produces identical bytes.
    """
    data: dict[str, Any] = lock.model_dump(mode="json")
    tasks = data["tasks"]
    ordered = {
        "version": data["version"],
        "tasks": {
            name: {
                "last_run": tasks[name]["last_run"],
                "sources_hash": tasks[name]["sources_hash"],
                "files": dict(sorted(tasks[name]["files"].items())),
            }
            for name in sorted(tasks)
        },
    }
    return json.dumps(ordered, indent=2) + "\n"


def save_lock(lock: Lock, lock_path: Path) -> None:
    """Write the lockfile, replacing any previous content."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    with open(lock_path, "w", encoding="utf-8") as f:
        f.write(dump_lock(lock))


def merge_lock(prior: Lock, updates: Mapping[str, TaskLockEntry]) -> Lock:
    """Overlay this run's entries onto the prior lock.

    Entries for tasks absent from updates are carried over unchanged. The
    prior lock is not modified.
    """
    tasks = dict(prior.tasks)
    tasks.update(updates)
    return Lock(tasks=tasks)
