"""llmake - Re-run LLM generation commands only when their sources change."""

__version__ = "0.1.1"

# On-disk names
LOCK_FILE = ".llmake.lock"
LOCK_VERSION = 1
CONFIG_FILES = (
    "llmake.py",
    "llmake.jsonc",
    "llmake.json",
    "llmake.toml",
    "llmake.yaml",
    "llmake.yml",
)
STARTER_CONFIG_FILE = "llmake.toml"

# Placeholder substituted with the assembled prompt in runner commands
PROMPT_PLACEHOLDER = "{prompt}"
