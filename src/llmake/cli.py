"""CLI for llmake."""

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import CONFIG_FILES, STARTER_CONFIG_FILE, __version__
from .config import ConfigError, discover_config, load_config, write_starter_config
from .lock import get_lock_path, load_lock, save_lock
from .orchestrator import Mode, run_tasks
from .runner import execute_runner

console = Console()
error_console = Console(stderr=True)


def get_project_root() -> Path:
    """Get the project root directory (current working directory)."""
    return Path.cwd()


def setup_logging(verbose: bool) -> None:
    """Route llmake log records to stderr through rich."""
    logger = logging.getLogger("llmake")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(
            RichHandler(console=error_console, show_time=False, show_path=False)
        )


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit."""
    error_console.print(f"[red]llmake:[/red] {escape(message)}", highlight=False, soft_wrap=True)
    sys.exit(code)


@click.command()
@click.version_option(version=__version__, prog_name="llmake")
@click.argument("task", required=False)
@click.option("--force", "-f", is_flag=True, help="Run regardless of hash state")
@click.option("--dry-run", "-n", is_flag=True, help="Show what would run")
@click.option("--status", "-s", is_flag=True, help="Show per-task change status")
@click.option("--init", "init_", is_flag=True, help=f"Write starter {STARTER_CONFIG_FILE}")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Use a specific config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def main(
    task: str | None,
    force: bool,
    dry_run: bool,
    status: bool,
    init_: bool,
    config_path: Path | None,
    verbose: bool,
) -> None:
    """llmake - Run LLM generation tasks when their sources change.

    \b
    Usage:
      llmake                  Run all tasks with changes
      llmake TASK             Run a specific task if changed
      llmake --force [TASK]   Run regardless of hash state
      llmake --dry-run [TASK] Show what would run
      llmake --status         Show per-task change status
      llmake --init           Write starter config
    """
    setup_logging(verbose)
    project_root = get_project_root()

    if init_:
        _init(project_root)
        return

    if config_path is None:
        config_path = discover_config(project_root)
        if config_path is None:
            fail(f"no config file found ({', '.join(CONFIG_FILES)})", code=2)
    config_path = config_path.resolve()

    try:
        config = load_config(config_path)
    except ConfigError as e:
        fail(str(e))

    console.print(
        f"llmake: loaded {escape(config_path.name)} ({len(config.tasks)} tasks)",
        highlight=False,
        soft_wrap=True,
    )

    if task is not None and task not in config.tasks:
        fail(f"unknown task: {task}")

    mode = Mode.from_flags(force=force, dry_run=dry_run, status=status)
    lock_path = get_lock_path(config_path)
    lock = load_lock(lock_path)

    try:
        tasks = config.resolve_tasks([task] if task else None)
        summary = run_tasks(
            tasks,
            lock,
            mode=mode,
            root=project_root,
            execute=execute_runner,
            console=console,
        )
    except ConfigError as e:
        fail(str(e))

    if mode.writes_lock:
        try:
            save_lock(summary.lock, lock_path)
        except OSError as e:
            fail(f"cannot write {lock_path}: {e.strerror or e}")

    if summary.any_failed:
        fail(f"failed tasks: {', '.join(summary.failed_tasks)}")


def _init(project_root: Path) -> None:
    """Write the starter config in the project root."""
    config_path = project_root / STARTER_CONFIG_FILE
    try:
        write_starter_config(config_path)
    except ConfigError as e:
        fail(str(e))
    console.print(f"llmake: created {STARTER_CONFIG_FILE}", highlight=False)


if __name__ == "__main__":
    main()
