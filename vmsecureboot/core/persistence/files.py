"""
File persistence — atomic writes for every file the tool owns or mutates.

Writes go to a temp file in the same directory and are then renamed
over the target, so a crash mid-write never leaves a half-written key,
unit file, init script or kernel module behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def temp_sibling(path: Path, suffix: str = ".tmp") -> Path:
    """Create an empty temp file next to ``path`` and return its path.

    Same directory means same filesystem, so ``os.replace`` is atomic.
    """
    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=suffix,
    )
    os.close(fd)
    return Path(tmp_path)


def atomic_write_bytes(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write ``data`` to ``path`` atomically.

    Args:
        path: Target file.
        data: Full new content.
        mode: Permission bits for the result. None keeps the existing
            file's mode, or 0o644 for a new file.

    Raises:
        OSError: If the directory is not writable or the rename fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    if mode is None:
        try:
            mode = path.stat().st_mode & 0o7777
        except FileNotFoundError:
            mode = 0o644

    tmp = temp_sibling(path)
    try:
        # chmod before the content lands so a private key is never world-readable
        os.chmod(tmp, mode)
        tmp.write_bytes(data)
        os.replace(tmp, path)
        logger.debug("Wrote %s (%d bytes, mode %o)", path, len(data), mode)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """Text variant of :func:`atomic_write_bytes` (UTF-8)."""
    atomic_write_bytes(path, content.encode("utf-8"), mode=mode)
