"""
Cross-process file locking and atomic file replacement.

Locks are advisory ``flock`` locks taken on a sidecar ``<file>.lock``
rather than on the data file itself: the data file is replaced by
rename on every write, and a lock held on the old inode would not
protect the new one.

A shared lock admits any number of readers; an exclusive lock admits a
single writer and no readers.  Acquisition blocks until the holder
releases; there is no timeout.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + LOCK_SUFFIX)


@contextmanager
def file_lock(path: Path, exclusive: bool = False) -> Iterator[None]:
    """Hold a shared or exclusive lock guarding ``path``.

    The parent directory must exist.

    Raises:
        OSError: If the lock file cannot be opened or locked.
    """
    lock_path = lock_path_for(path)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
        logger.debug("Acquired %s lock on %s", "exclusive" if exclusive else "shared", path)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def atomic_write_text(path: Path, content: str, prefix: str = ".tmp_") -> None:
    """Replace ``path`` with ``content`` (write to temp, then rename).

    Readers observe either the old or the new document, never a partial one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, 0o644)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
