"""
imgpkg adapter — pulls OCI images to a local directory.

Thin wrapper around the ``imgpkg`` binary.  Registry authentication,
retries and transport are imgpkg's business.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

IMGPKG_BIN = "imgpkg"
PULL_TIMEOUT = 300


class ImageFetchError(Exception):
    """Raised when an image cannot be pulled."""


def imgpkg_available() -> bool:
    return shutil.which(IMGPKG_BIN) is not None


def _run_imgpkg(*args: str, timeout: int = PULL_TIMEOUT) -> subprocess.CompletedProcess[str]:
    """Run an imgpkg command and return the result."""
    return subprocess.run(
        [IMGPKG_BIN, *args],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def pull_image(image: str, dest_dir: Path, timeout: int = PULL_TIMEOUT) -> None:
    """Pull ``image`` and extract its files into ``dest_dir``.

    Raises:
        ImageFetchError: If imgpkg is missing, times out or fails.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Pulling image %s into %s", image, dest_dir)
    try:
        result = _run_imgpkg("pull", "-i", image, "-o", str(dest_dir), timeout=timeout)
    except FileNotFoundError as e:
        raise ImageFetchError(f"{IMGPKG_BIN} not found on PATH, cannot pull {image}") from e
    except subprocess.TimeoutExpired as e:
        raise ImageFetchError(f"timed out after {timeout}s pulling {image}") from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise ImageFetchError(f"failed to pull {image}: {detail}")


def pull_file(image: str, dest_file: Path, timeout: int = PULL_TIMEOUT) -> None:
    """Pull a single-file image (a plugin binary) to ``dest_file``.

    Raises:
        ImageFetchError: If the pull fails or the image does not hold
            exactly one file.
    """
    staging = dest_file.parent / f".pull_{dest_file.name}"
    shutil.rmtree(staging, ignore_errors=True)
    try:
        pull_image(image, staging, timeout=timeout)
        files = [p for p in staging.rglob("*") if p.is_file() and ".imgpkg" not in p.parts]
        if len(files) != 1:
            raise ImageFetchError(f"expected exactly one file in {image}, found {len(files)}")
        dest_file.parent.mkdir(parents=True, exist_ok=True)
        files[0].replace(dest_file)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
