"""Temporary upload workspace: path validation and best-effort cleanup."""

import logging
import shutil
import uuid
from pathlib import Path

from paperlens.errors import PathTraversalError

logger = logging.getLogger(__name__)


def ensure_within(root: str | Path, candidate: str | Path) -> Path:
    """Resolve candidate and reject it if it escapes root.

    Raises:
        PathTraversalError: candidate resolves outside root
    """
    resolved_root = Path(root).resolve()
    resolved = Path(candidate).resolve()
    if resolved != resolved_root and resolved_root not in resolved.parents:
        raise PathTraversalError(f"Invalid file path: {candidate}")
    return resolved


def make_scratch_dir(root: str | Path, prefix: str) -> Path:
    """Create a uniquely named directory under root."""
    directory = ensure_within(root, Path(root) / f"{prefix}_{uuid.uuid4().hex}")
    directory.mkdir(parents=True, exist_ok=False)
    return directory


def cleanup_paths(paths: list[Path]) -> None:
    """Remove files and directories, logging rather than raising on failure."""
    for path in paths:
        try:
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=False)
            elif path.exists():
                path.unlink()
        except OSError as e:
            logger.warning(f"Cleanup warning for {path}: {e}")
