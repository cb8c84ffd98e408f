"""Content hashing and Merkle root aggregation for llmake."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

DIGEST_PREFIX = "sha256:"
CHUNK_SIZE = 8192


def format_digest(hexdigest: str) -> str:
    """Prefix a hex digest with the algorithm tag."""
    return f"{DIGEST_PREFIX}{hexdigest}"


def hash_file(filepath: Path) -> str:
    """Compute the SHA256 digest of file contents, streamed in chunks.

    Raises:
        OSError: If the file cannot be opened or read
    """
    h = hashlib.sha256()
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return format_digest(h.hexdigest())


def compute_merkle_root(file_hashes: Mapping[str, str]) -> str:
    """Compute the aggregate digest of a file set.

    Paths are sorted and ``"<path>:<digest>\\n"`` lines are fed into a single
    hash. An empty file set yields the digest of zero bytes.
    """
    h = hashlib.sha256()
    for path in sorted(file_hashes):
        h.update(f"{path}:{file_hashes[path]}\n".encode())
    return format_digest(h.hexdigest())


def hash_files(paths: Iterable[str], root: Path) -> dict[str, str]:
    """
    Hash every path under root, skipping files that cannot be read.

    Args:
        paths: Paths relative to root, typically from ``resolve_files``
        root: Directory the paths are relative to

    Returns:
        Mapping of path to digest, in sorted path order
    """
    file_hashes: dict[str, str] = {}
    for path in sorted(paths):
        try:
            file_hashes[path] = hash_file(root / path)
        except OSError as e:
            # Deleted or unreadable between resolution and hashing
            logger.warning("Skipping %s: %s", path, e.strerror or e)
    return file_hashes
