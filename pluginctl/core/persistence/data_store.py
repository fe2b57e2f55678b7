"""
Data store — small key/value YAML document for CLI state.

Holds values the CLI needs to remember between invocations (for
example the last time the recommended-version check ran).  It is not
configuration and is not meant to be edited by users, hence the hidden
file name ``.data-store.yaml``.

Every operation re-reads the whole document from disk under a lock:

    get     shared lock, read, release
    set     exclusive lock, read, upsert, write, release
    delete  exclusive lock, read, remove, write, release

The exclusive lock spans the entire read-modify-write, so concurrent
CLI processes cannot interleave updates.  Writes replace the file
atomically.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from pluginctl.core.config import paths
from pluginctl.core.persistence.file_lock import atomic_write_text, file_lock

logger = logging.getLogger(__name__)


class DataStoreError(Exception):
    """Raised when the data store cannot be read or written."""


class DataStoreKeyNotFoundError(DataStoreError):
    """Raised when deleting a key that is not in the data store."""

    def __init__(self, key: str):
        super().__init__(f"key {key!r} not found in data store")
        self.key = key


def _to_plain(value: Any) -> Any:
    """Reduce a value to the types YAML can represent safely."""
    if isinstance(value, BaseModel):
        return _to_plain(value.model_dump(mode="python"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_plain(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_plain(v) for v in value]
    return value


class LockedDocument:
    """The data store document while an exclusive lock is held.

    Only obtainable from ``DataStore.edit()``; ``commit()`` persists
    ``content`` and is only valid while the lock is still held.
    """

    def __init__(self, store: DataStore, content: dict[str, Any]):
        self._store = store
        self._open = True
        self.content = content

    def commit(self) -> None:
        if not self._open:
            raise DataStoreError("cannot save the data store file as it is not locked")
        self._store._write(self.content)

    def _close(self) -> None:
        self._open = False


class DataStore:
    """Key/value store backed by one YAML file.

    Args:
        path: Backing file.  Defaults to ``paths.data_store_file()``,
            resolved on every operation.
    """

    def __init__(self, path: Path | None = None):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else paths.data_store_file()

    # ── Reads ───────────────────────────────────────────────────

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, found)``.

        A missing file or directory is an empty document, not an error,
        and nothing is created on disk.
        """
        path = self.path
        if not path.is_file():
            return None, False

        try:
            with file_lock(path, exclusive=False):
                content = self._read(path)
        except OSError as e:
            raise DataStoreError(f"could not lock data store file {path}: {e}") from e

        if key not in content:
            return None, False
        return content[key], True

    def get_value(self, key: str) -> Any:
        """Return the value of ``key``, or None if absent."""
        value, _found = self.get(key)
        return value

    # ── Writes ──────────────────────────────────────────────────

    @contextmanager
    def edit(self) -> Iterator[LockedDocument]:
        """Hold the exclusive lock for a read-modify-write cycle.

        Yields the current document; call ``commit()`` to persist it.
        Leaving the block without committing leaves the file unchanged.
        """
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DataStoreError(f"could not create data store directory {path.parent}: {e}") from e

        with ExitStack() as stack:
            try:
                stack.enter_context(file_lock(path, exclusive=True))
            except OSError as e:
                raise DataStoreError(f"could not lock data store file {path}: {e}") from e

            doc = LockedDocument(self, self._read(path) if path.is_file() else {})
            try:
                yield doc
            finally:
                doc._close()

    def set(self, key: str, value: Any) -> None:
        """Insert or replace ``key``."""
        with self.edit() as doc:
            doc.content[key] = value
            doc.commit()
        logger.debug("Data store: set %s", key)

    def delete(self, key: str) -> Any:
        """Remove ``key`` and return its previous value.

        Raises:
            DataStoreKeyNotFoundError: If the key is absent; the store is
                left unchanged.
        """
        with self.edit() as doc:
            if key not in doc.content:
                raise DataStoreKeyNotFoundError(key)
            previous = doc.content.pop(key)
            doc.commit()
        logger.debug("Data store: deleted %s", key)
        return previous

    # ── Internals ───────────────────────────────────────────────

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise DataStoreError(f"could not read data store file {path}: {e}") from e

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise DataStoreError(f"could not decode data store file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise DataStoreError(
                f"could not decode data store file {path}: "
                f"expected a mapping, got {type(data).__name__}"
            )
        return data

    def _write(self, content: dict[str, Any]) -> None:
        path = self.path
        try:
            out = yaml.safe_dump(_to_plain(content), default_flow_style=False, sort_keys=True)
        except yaml.YAMLError as e:
            raise DataStoreError(f"failed to encode the data store file: {e}") from e

        try:
            atomic_write_text(path, out, prefix=".data-store_")
        except OSError as e:
            raise DataStoreError(f"failed to write the data store file {path}: {e}") from e


# ── Module-level convenience (default location) ─────────────────


def get_data_store_value(key: str) -> Any:
    """Value of ``key`` in the default data store, or None."""
    return DataStore().get_value(key)


def set_data_store_value(key: str, value: Any) -> None:
    DataStore().set(key, value)


def delete_data_store_value(key: str) -> Any:
    return DataStore().delete(key)
