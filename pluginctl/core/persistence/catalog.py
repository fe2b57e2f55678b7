"""
Local plugin catalog — which plugin binaries are installed, where, and
under which scope.

The catalog is one YAML document, ``catalog.yaml`` in the cache
directory, shared by every scope:

    index_by_path        installation path → full PluginDescriptor
    index_by_name        plugin key → [installation paths...]
    standalone_plugins   plugin key → installation path
    server_plugins       context name → (plugin key → installation path)

A plugin key is ``plugin_name_target(name, target)``.  Every path
referenced by an association map has an entry in ``index_by_path``.

A ContextCatalog narrows the shared document to one scope: the empty
context name is the standalone scope.  Uninstalling only drops the
scope's association; path-indexed metadata is kept.

Each mutation takes the exclusive lock, re-reads the latest document,
applies the change and replaces the file atomically, so concurrent CLI
processes do not lose each other's updates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from pluginctl.core.config import paths
from pluginctl.core.models.plugin import PluginDescriptor
from pluginctl.core.models.target import Target, plugin_name_target
from pluginctl.core.persistence.file_lock import atomic_write_text, file_lock

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when the catalog cache cannot be read or written."""


class Catalog(BaseModel):
    """The shared catalog document."""

    index_by_path: dict[str, PluginDescriptor] = Field(default_factory=dict)
    index_by_name: dict[str, list[str]] = Field(default_factory=dict)
    standalone_plugins: dict[str, str] = Field(default_factory=dict)
    server_plugins: dict[str, dict[str, str]] = Field(default_factory=dict)

    def associations(self, context: str = "") -> dict[str, str]:
        """Plugin key → path map for one scope, created on first use."""
        if not context:
            return self.standalone_plugins
        return self.server_plugins.setdefault(context, {})

    def upsert(self, descriptor: PluginDescriptor, context: str = "") -> None:
        key = descriptor.catalog_key()
        path = descriptor.installation_path

        self.associations(context)[key] = path
        self.index_by_path[path] = descriptor

        paths_for_key = self.index_by_name.setdefault(key, [])
        if path not in paths_for_key:
            paths_for_key.append(path)

    def remove(self, key: str, context: str = "") -> bool:
        """Drop the scope's association for ``key``; True if one existed."""
        return self.associations(context).pop(key, None) is not None

    def lookup(self, key: str, context: str = "") -> PluginDescriptor | None:
        path = self.associations(context).get(key)
        if path is None:
            return None
        return self.index_by_path.get(path)

    def descriptors(self, context: str = "") -> list[PluginDescriptor]:
        result = []
        for key, path in sorted(self.associations(context).items()):
            descriptor = self.index_by_path.get(path)
            if descriptor is None:
                logger.warning("Catalog entry %s points to unknown path %s, skipping", key, path)
                continue
            result.append(descriptor)
        return result

    def all_server_plugins(self) -> list[PluginDescriptor]:
        """Descriptors associated with any context scope."""
        result = []
        for context in sorted(self.server_plugins):
            result.extend(self.descriptors(context))
        return result


class CatalogStore:
    """Reads and writes the catalog file."""

    def __init__(self, path: Path | None = None):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else paths.catalog_file()

    def load(self) -> Catalog:
        """Load the catalog; a missing file yields an empty skeleton."""
        path = self.path
        if not path.is_file():
            return Catalog()
        try:
            with file_lock(path, exclusive=False):
                return self._read(path)
        except OSError as e:
            raise CatalogError(f"could not lock catalog file {path}: {e}") from e

    @contextmanager
    def edit(self) -> Iterator[Catalog]:
        """Exclusive read-modify-write; the catalog is saved on normal exit."""
        path = self.path
        with ExitStack() as stack:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                stack.enter_context(file_lock(path, exclusive=True))
            except OSError as e:
                raise CatalogError(f"could not lock catalog file {path}: {e}") from e

            catalog = self._read(path) if path.is_file() else Catalog()
            yield catalog
            self._write(path, catalog)

    def clean(self) -> None:
        """Delete the catalog file; the next open starts empty."""
        path = self.path
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CatalogError(f"could not delete catalog file {path}: {e}") from e
        logger.info("Catalog cache %s removed", path)

    def _read(self, path: Path) -> Catalog:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Catalog()
        except OSError as e:
            raise CatalogError(f"could not read catalog file {path}: {e}") from e

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise CatalogError(f"could not decode catalog file {path}: {e}") from e

        if data is None:
            return Catalog()
        if not isinstance(data, dict):
            raise CatalogError(f"could not decode catalog file {path}: expected a mapping")

        # Sections written as empty YAML nodes come back as None
        cleaned: dict[str, Any] = {k: v for k, v in data.items() if v is not None}
        try:
            return Catalog.model_validate(cleaned)
        except ValidationError as e:
            raise CatalogError(f"could not decode catalog file {path}: {e}") from e

    def _write(self, path: Path, catalog: Catalog) -> None:
        try:
            out = yaml.safe_dump(catalog.model_dump(mode="json"), default_flow_style=False)
        except yaml.YAMLError as e:
            raise CatalogError(f"failed to encode catalog cache file: {e}") from e
        try:
            atomic_write_text(path, out, prefix=".catalog_")
        except OSError as e:
            raise CatalogError(f"failed to write catalog cache file {path}: {e}") from e
        logger.debug("Catalog saved to %s", path)


class ContextCatalog:
    """The local catalog narrowed to one scope.

    Args:
        context: Context name; "" selects the standalone scope.
        store: Catalog file access (defaults to the cache directory).
    """

    def __init__(self, context: str = "", store: CatalogStore | None = None):
        self.context = context
        self._store = store or CatalogStore()
        self._catalog = self._store.load()
        # An unseen context gets an empty scope in memory only
        self._catalog.associations(context)

    @classmethod
    def open(cls, context: str = "", store: CatalogStore | None = None) -> ContextCatalog:
        return cls(context=context, store=store)

    @property
    def catalog(self) -> Catalog:
        """The shared catalog as of the last load or mutation."""
        return self._catalog

    def upsert(self, descriptor: PluginDescriptor) -> None:
        """Record the installation of ``descriptor`` in this scope and persist."""
        if not descriptor.installation_path:
            raise CatalogError(f"plugin {descriptor.name!r} has no installation path")

        with self._store.edit() as catalog:
            catalog.upsert(descriptor, self.context)
        self._catalog = catalog
        logger.debug(
            "Catalog: %s %s recorded in scope %r",
            descriptor.catalog_key(), descriptor.version, self.context or "standalone",
        )

    def get(self, name: str, target: Target | str | None = None) -> tuple[PluginDescriptor | None, bool]:
        """Look up an installed plugin in this scope.

        Returns ``(None, False)`` if the plugin is not associated with the
        scope, or if the association points at an unknown path.
        """
        descriptor = self._catalog.lookup(plugin_name_target(name, target), self.context)
        return descriptor, descriptor is not None

    def list(self) -> list[PluginDescriptor]:
        """Plugins associated with this scope only."""
        return self._catalog.descriptors(self.context)

    def delete(self, name: str, target: Target | str | None = None) -> bool:
        """Remove the plugin from this scope (the binary is left on disk).

        Returns True if an association was removed.
        """
        key = plugin_name_target(name, target)
        with self._store.edit() as catalog:
            removed = catalog.remove(key, self.context)
        self._catalog = catalog
        logger.debug("Catalog: %s removed from scope %r: %s", key, self.context or "standalone", removed)
        return removed


def open_context_catalog(context: str = "") -> ContextCatalog:
    return ContextCatalog.open(context)


def clean_catalog_cache() -> None:
    CatalogStore().clean()
