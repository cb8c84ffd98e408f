"""Configuration loading for llmake."""

import importlib.util
import json
import os
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

import json5
import yaml
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from . import CONFIG_FILES, PROMPT_PLACEHOLDER


class ConfigError(ValueError):
    """Config file missing, unparseable, or invalid."""


def _require_placeholder(value: str) -> str:
    if PROMPT_PLACEHOLDER not in value:
        raise ValueError(f"runner must contain {PROMPT_PLACEHOLDER} placeholder")
    return value


RunnerCommand = Annotated[str, Field(min_length=1), AfterValidator(_require_placeholder)]


class TaskConfig(BaseModel):
    """A single task as written in the config file."""

    model_config = ConfigDict(extra="allow")

    prompt: str = Field(min_length=1)
    sources: list[str] = Field(min_length=1)
    exclude: list[str] = Field(default_factory=list)
    runner: RunnerCommand | None = None  # Overrides the top-level runner


class ResolvedTask(BaseModel):
    """A task with its effective runner, as handed to the orchestrator."""

    name: str
    prompt: str
    sources: list[str]
    exclude: list[str] = Field(default_factory=list)
    runner: str


class LlmakeConfig(BaseModel):
    """Top-level llmake configuration."""

    model_config = ConfigDict(extra="allow")

    runner: RunnerCommand
    tasks: dict[str, TaskConfig]

    @field_validator("tasks")
    @classmethod
    def tasks_not_empty(cls, value: dict[str, TaskConfig]) -> dict[str, TaskConfig]:
        if not value:
            raise ValueError("tasks must not be empty")
        return value

    def resolve_tasks(self, names: list[str] | None = None) -> list[ResolvedTask]:
        """Resolve tasks in config order, applying the default runner."""
        selected = names if names is not None else list(self.tasks)
        return [
            ResolvedTask(
                name=name,
                prompt=self.tasks[name].prompt,
                sources=self.tasks[name].sources,
                exclude=self.tasks[name].exclude,
                runner=self.tasks[name].runner or self.runner,
            )
            for name in selected
        ]


STARTER_CONFIG = """\
# llmake.toml

# Default runner command. {prompt} is replaced with the assembled prompt.
runner = "claude --allowed-tools Read,Write,Edit --print {prompt}"

[tasks.example]
prompt = "Describe what this code does"
sources = ["src/**/*.py"]
# exclude = ["src/**/test_*.py"]
# runner = "other-tool {prompt}"
"""


def discover_config(directory: Path | None = None) -> Path | None:
    """Find the first config file in directory (defaults to cwd)."""
    directory = directory or Path.cwd()
    for filename in CONFIG_FILES:
        path = directory / filename
        if path.is_file():
            return path
    return None


def load_config(config_path: Path) -> LlmakeConfig:
    """Load and validate a config file.

    The format is chosen by file suffix. Environment variables can
    override config values.

    Raises:
        ConfigError: If the file can't be read, parsed, or validated
    """
    try:
        raw = _read_raw(config_path)
    except ConfigError:
        raise
    except OSError as e:
        raise ConfigError(f"cannot read {config_path}: {e.strerror or e}") from e
    except (ValueError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"invalid {config_path.suffix[1:]} in {config_path.name}: {e}") from e

    config = validate_config(raw)
    return _apply_env_overrides(config)


def validate_config(raw: Any) -> LlmakeConfig:
    """Validate raw config data, reporting the first failing field."""
    try:
        return LlmakeConfig.model_validate(raw)
    except ValidationError as e:
        issue = e.errors()[0]
        loc = ".".join(str(part) for part in issue["loc"])
        where = f' in "{loc}"' if loc else ""
        raise ConfigError(f"config error{where}: {issue['msg']}") from e


def write_starter_config(config_path: Path) -> None:
    """Write the starter config, refusing to overwrite an existing file."""
    if config_path.exists():
        raise ConfigError(f"{config_path.name} already exists")
    config_path.write_text(STARTER_CONFIG)


def _read_raw(config_path: Path) -> Any:
    """Parse a config file into plain data."""
    suffix = config_path.suffix.lower()

    if suffix == ".py":
        return _load_python_config(config_path)
    if suffix == ".json":
        with open(config_path, encoding="utf-8") as f:
            return json.load(f)
    if suffix in (".jsonc", ".json5"):
        with open(config_path, encoding="utf-8") as f:
            return json5.load(f)
    if suffix == ".toml":
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    if suffix in (".yaml", ".yml"):
        with open(config_path, encoding="utf-8") as f:
            return yaml.safe_load(f)

    raise ConfigError(f"unsupported config format: {suffix or config_path.name}")


def _load_python_config(config_path: Path) -> Any:
    """Execute a Python config and return its ``config`` attribute.

    ``config`` may be a mapping or a zero-argument callable returning one.
    """
    spec = importlib.util.spec_from_file_location("_llmake_config", config_path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"cannot load {config_path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise ConfigError(f"error executing {config_path.name}: {e}") from e

    if not hasattr(module, "config"):
        raise ConfigError(f"{config_path.name} must define `config`")

    value: Any | Callable[[], Any] = module.config
    return value() if callable(value) else value


def _apply_env_overrides(config: LlmakeConfig) -> LlmakeConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # LLMAKE_RUNNER
    if runner := os.environ.get("LLMAKE_RUNNER"):
        data["runner"] = runner

    return validate_config(data)
