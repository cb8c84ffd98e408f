"""Glob resolution of task source files."""

from pathlib import Path, PurePosixPath, PureWindowsPath


def is_hidden(relative_path: str) -> bool:
    """Check if any segment of a relative path starts with a dot."""
    return any(part.startswith(".") for part in Path(relative_path).parts)


def is_absolute_pattern(pattern: str) -> bool:
    """Check if a glob pattern is anchored outside the project root."""
    return PurePosixPath(pattern).is_absolute() or PureWindowsPath(pattern).is_absolute()


def normalize_pattern(pattern: str) -> str:
    """Make a trailing ``**`` match files as well as directories."""
    if pattern == "**" or pattern.endswith("/**"):
        return f"{pattern}/*"
    return pattern


def resolve_files(
    sources: list[str],
    exclude: list[str] | None = None,
    root: Path | None = None,
) -> list[str]:
    """
    Expand glob patterns into a sorted, deduplicated list of files.

    Args:
        sources: Glob patterns relative to root (``**`` matches across directories)
        exclude: Glob patterns whose matches are removed from the result
        root: Directory patterns are evaluated against (defaults to cwd)

    Returns:
        POSIX-style paths relative to root. Dotfiles and files inside
        dot-directories are never returned.

    Raises:
        ValueError: If a pattern is absolute
    """
    root = root or Path.cwd()

    matched = _match(root, sources)
    if exclude:
        matched -= _match(root, exclude)

    return sorted(matched)


def _match(root: Path, patterns: list[str]) -> set[str]:
    """Union of all regular, non-hidden files matched by patterns."""
    found: set[str] = set()
    for pattern in patterns:
        if not pattern:
            continue
        if is_absolute_pattern(pattern):
            raise ValueError(f"pattern must be relative: {pattern}")
        for path in root.glob(normalize_pattern(pattern)):
            if not path.is_file():
                continue
            relative = path.relative_to(root).as_posix()
            if is_hidden(relative):
                continue
            found.add(relative)
    return found
