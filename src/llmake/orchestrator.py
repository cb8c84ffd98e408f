"""Per-task orchestration: resolve, hash, diff, run, record."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from . import PROMPT_PLACEHOLDER
from .config import ConfigError, ResolvedTask
from .diff import TaskDiff, diff_task
from .lock import Lock, TaskLockEntry, create_entry, merge_lock
from .merkle import compute_merkle_root, hash_files
from .resolver import is_absolute_pattern, resolve_files
from .runner import assemble_prompt, describe_runner, execute_runner

logger = logging.getLogger(__name__)

# Runner signature: (runner_command, assembled_prompt, cwd) -> exit code
Executor = Callable[[str, str, Path], int]

# Changed files listed inline before collapsing into "+N more"
PREVIEW_FILES = 3


class InvalidTaskError(ConfigError):
    """A resolved task that can't be processed."""


class Mode(str, Enum):
    """How tasks are processed in one invocation."""

    NORMAL = "normal"
    FORCE = "force"
    DRY_RUN = "dry-run"
    FORCED_DRY_RUN = "forced-dry-run"
    STATUS = "status"

    @classmethod
    def from_flags(cls, force: bool = False, dry_run: bool = False, status: bool = False) -> Mode:
        if status:
            return cls.STATUS
        if dry_run:
            return cls.FORCED_DRY_RUN if force else cls.DRY_RUN
        return cls.FORCE if force else cls.NORMAL

    @property
    def forced(self) -> bool:
        return self in (Mode.FORCE, Mode.FORCED_DRY_RUN)

    @property
    def writes_lock(self) -> bool:
        """Whether the lockfile is written after processing."""
        return self in (Mode.NORMAL, Mode.FORCE)


class Outcome(str, Enum):
    """Terminal action taken for a task."""

    NO_FILES = "no-files"
    UP_TO_DATE = "up-to-date"
    STATUS = "status"
    DRY_RUN = "dry-run"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class TaskReport:
    """What happened to one task."""

    name: str
    outcome: Outcome
    diff: TaskDiff | None = None
    exit_code: int | None = None
    elapsed: float | None = None
    entry: TaskLockEntry | None = None  # Set only on success


@dataclass
class RunSummary:
    """Result of processing a list of tasks."""

    lock: Lock
    reports: list[TaskReport] = field(default_factory=list)

    @property
    def any_failed(self) -> bool:
        return any(report.outcome is Outcome.FAILED for report in self.reports)

    @property
    def failed_tasks(self) -> list[str]:
        return [r.name for r in self.reports if r.outcome is Outcome.FAILED]


@dataclass
class PreparedTask:
    """A task with its sources hashed and diffed."""

    task: ResolvedTask
    file_hashes: dict[str, str]
    merkle_root: str
    diff: TaskDiff


def validate_task(task: ResolvedTask) -> None:
    """Raise InvalidTaskError if a task can't be processed."""
    if not task.sources or not any(task.sources):
        raise InvalidTaskError(f'task "{task.name}": sources must not be empty')
    if PROMPT_PLACEHOLDER not in task.runner:
        raise InvalidTaskError(
            f'task "{task.name}": runner must contain {PROMPT_PLACEHOLDER} placeholder'
        )
    for pattern in [*task.sources, *task.exclude]:
        if is_absolute_pattern(pattern):
            raise InvalidTaskError(
                f'task "{task.name}": pattern must be relative to the project: {pattern}'
            )


def prepare_task(task: ResolvedTask, lock: Lock, root: Path) -> PreparedTask | None:
    """
    Resolve, hash and diff a task's sources.

    Returns:
        The prepared task, or None if no readable files matched
    """
    files = resolve_files(task.sources, task.exclude, root=root)
    if not files:
        return None

    file_hashes = hash_files(files, root)
    if not file_hashes:
        return None

    merkle_root = compute_merkle_root(file_hashes)
    diff = diff_task(task.name, file_hashes, merkle_root, lock.tasks.get(task.name))
    return PreparedTask(task=task, file_hashes=file_hashes, merkle_root=merkle_root, diff=diff)


class Orchestrator:
    """Runs tasks sequentially against a loaded lock."""

    def __init__(
        self,
        root: Path,
        mode: Mode = Mode.NORMAL,
        execute: Executor = execute_runner,
        console: Console | None = None,
    ):
        self.root = root
        self.mode = mode
        self.execute = execute
        self.console = console or Console()

    def run(self, tasks: list[ResolvedTask], lock: Lock) -> RunSummary:
        """
        Process tasks in order.

        The given lock is never modified. Entries from successful runs are
        overlaid onto it in the returned summary.
        """
        for task in tasks:
            validate_task(task)

        updates: dict[str, TaskLockEntry] = {}
        reports: list[TaskReport] = []

        for task in tasks:
            report = self._process(task, lock)
            reports.append(report)
            if report.entry is not None:
                updates[task.name] = report.entry

        return RunSummary(lock=merge_lock(lock, updates), reports=reports)

    def _process(self, task: ResolvedTask, lock: Lock) -> TaskReport:
        try:
            prepared = prepare_task(task, lock, self.root)
        except (ValueError, NotImplementedError, OSError) as e:
            logger.error("Task %s: cannot resolve sources: %s", task.name, e)
            self._say(task.name, f"failed (cannot resolve sources: {e})", style="red")
            return TaskReport(name=task.name, outcome=Outcome.FAILED)

        if prepared is None:
            self._say(task.name, "no files matched")
            return TaskReport(name=task.name, outcome=Outcome.NO_FILES)

        diff = prepared.diff
        should_run = diff.changed or self.mode.forced

        if self.mode is Mode.STATUS:
            if diff.changed:
                self._say(task.name, f"changed ({diff.total_changes} files)")
            else:
                self._say(task.name, "up to date")
            return TaskReport(name=task.name, outcome=Outcome.STATUS, diff=diff)

        if self.mode in (Mode.DRY_RUN, Mode.FORCED_DRY_RUN):
            if should_run:
                self._say(task.name, f"would run: {describe_runner(task.runner)}")
            else:
                self._say(task.name, "no changes, would skip")
            return TaskReport(name=task.name, outcome=Outcome.DRY_RUN, diff=diff)

        if not should_run:
            self._say(task.name, "no changes")
            return TaskReport(name=task.name, outcome=Outcome.UP_TO_DATE, diff=diff)

        return self._run(prepared)

    def _run(self, prepared: PreparedTask) -> TaskReport:
        task, diff = prepared.task, prepared.diff
        self._report_changes(task.name, diff)
        self._say(task.name, f"running: {describe_runner(task.runner)}")

        prompt = assemble_prompt(task.prompt, diff.changed_files)
        start = time.perf_counter()
        exit_code = self.execute(task.runner, prompt, self.root)
        elapsed = time.perf_counter() - start

        if exit_code != 0:
            self._say(task.name, f"failed (exit {exit_code}, {elapsed:.1f}s)", style="red")
            return TaskReport(
                name=task.name,
                outcome=Outcome.FAILED,
                diff=diff,
                exit_code=exit_code,
                elapsed=elapsed,
            )

        self._say(task.name, f"done ({elapsed:.1f}s)", style="green")
        return TaskReport(
            name=task.name,
            outcome=Outcome.SUCCEEDED,
            diff=diff,
            exit_code=exit_code,
            elapsed=elapsed,
            entry=create_entry(prepared.merkle_root, prepared.file_hashes),
        )

    def _report_changes(self, name: str, diff: TaskDiff) -> None:
        if diff.changed_files:
            self._say(name, f"{len(diff.changed_files)} files changed ({_preview(diff.changed_files)})")
        if diff.removed_files:
            self._say(name, f"{len(diff.removed_files)} files removed ({_preview(diff.removed_files)})")
        if not diff.changed:
            self._say(name, "forced run")

    def _say(self, name: str, message: str, style: str | None = None) -> None:
        text = f"llmake: [bold]{escape(name)}[/bold] - {escape(message)}"
        if style:
            text = f"[{style}]{text}[/{style}]"
        self.console.print(text, highlight=False, soft_wrap=True)


def _preview(paths: list[str]) -> str:
    shown = ", ".join(paths[:PREVIEW_FILES])
    if len(paths) > PREVIEW_FILES:
        shown += f", +{len(paths) - PREVIEW_FILES} more"
    return shown


def run_tasks(
    tasks: list[ResolvedTask],
    lock: Lock,
    mode: Mode = Mode.NORMAL,
    root: Path | None = None,
    execute: Executor = execute_runner,
    console: Console | None = None,
) -> RunSummary:
    """
    Run tasks against a lock.

    This is the main entry point called by the CLI. The caller persists
    ``summary.lock`` when ``mode.writes_lock`` is true.

    Args:
        tasks: Resolved tasks, processed in order
        lock: Lock loaded at the start of the invocation
        mode: Invocation mode
        root: Directory source globs are resolved against (defaults to cwd)
        execute: Runner invocation, returning an exit code
        console: Rich console for progress output
    """
    orchestrator = Orchestrator(
        root=root or Path.cwd(),
        mode=mode,
        execute=execute,
        console=console,
    )
    return orchestrator.run(tasks, lock)
