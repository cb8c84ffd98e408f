"""Runner command execution for llmake."""

import logging
import os
import shlex
import subprocess
from pathlib import Path

from . import PROMPT_PLACEHOLDER

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "/bin/sh"
# Exit code reported when the shell itself can't be started
EXIT_NOT_FOUND = 127


def assemble_prompt(prompt: str, changed_files: list[str]) -> str:
    """Wrap the task prompt and the changed file list in tags."""
    return "\n".join(
        [
            f"<prompt>{prompt}</prompt>",
            f"<changed-files>{', '.join(changed_files)}</changed-files>",
        ]
    )


def render_command(runner: str, prompt: str) -> str:
    """Substitute the shell-quoted prompt into the runner template."""
    return runner.replace(PROMPT_PLACEHOLDER, shlex.quote(prompt), 1)


def describe_runner(runner: str) -> str:
    """Runner command with the prompt elided, for display."""
    return runner.replace(PROMPT_PLACEHOLDER, "...", 1)


def execute_runner(runner: str, prompt: str, cwd: Path | None = None) -> int:
    """
    Run a runner command through the user's login shell.

    The shell is started with ``-l -i`` so the user's PATH and aliases
    are available. Standard streams are inherited, so interactive
    programs work. Blocks until the command exits.

    Args:
        runner: Command template containing the prompt placeholder
        prompt: Assembled prompt text
        cwd: Working directory for the command (defaults to cwd)

    Returns:
        The command's exit code
    """
    shell = os.environ.get("SHELL") or DEFAULT_SHELL
    command = render_command(runner, prompt)

    env = os.environ.copy()
    env["FORCE_COLOR"] = "1"

    try:
        completed = subprocess.run(  # noqa: S603
            [shell, "-l", "-i", "-c", command],
            cwd=cwd,
            env=env,
            check=False,
        )
    except OSError as e:
        logger.error("Failed to start %s: %s", shell, e.strerror or e)
        return EXIT_NOT_FOUND

    return completed.returncode
