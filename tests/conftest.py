"""Shared test fixtures for llmake."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from llmake.config import ResolvedTask


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


class FakeRunner:
    """Stands in for the runner invocation, recording each call.

    Exit codes can be set per runner command; anything else exits 0.
    """

    def __init__(self, exit_codes: dict[str, int] | None = None):
        self.exit_codes = exit_codes or {}
        self.calls: list[tuple[str, str]] = []

    def __call__(self, runner: str, prompt: str, cwd: Path | None = None) -> int:
        self.calls.append((runner, prompt))
        return self.exit_codes.get(runner, 0)

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def make_task(
    name: str = "docs",
    sources: list[str] | None = None,
    exclude: list[str] | None = None,
    prompt: str = "Update the docs",
    runner: str = "gen {prompt}",
) -> ResolvedTask:
    """Build a resolved task with sensible defaults."""
    return ResolvedTask(
        name=name,
        prompt=prompt,
        sources=sources if sources is not None else ["src/*.md"],
        exclude=exclude or [],
        runner=runner,
    )


def write_config(project_root: Path, data: dict, filename: str = "llmake.json") -> Path:
    """Write a JSON config into the project and return its path."""
    config_path = project_root / filename
    config_path.write_text(json.dumps(data, indent=2))
    return config_path


@pytest.fixture
def docs_project(tmp_path: Path) -> Path:
    """A project with two markdown sources under src/.

    Structure:
        src/
        ├── a.md
        ├── b.md
        └── notes.txt
    """
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.md").write_text("# A\n")
    (src / "b.md").write_text("# B\n")
    (src / "notes.txt").write_text("not a source\n")
    return tmp_path
