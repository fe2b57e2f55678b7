"""
Central inventory discovery — plugins and plugin-groups published as a
SQLite database inside an OCI image.

On every query (unless running cache-only) the inventory image is pulled
into ``<cache>/plugin_inventory/<name>/``.  That directory then holds
``plugin_inventory.db`` and, when the repository publishes one,
``central_config.yaml``.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from pluginctl.core.config import paths
from pluginctl.core.config.loader import DiscoverySource
from pluginctl.core.inventory.db import InventoryDB, InventoryError
from pluginctl.core.inventory.resolver import (
    image_prefix_of,
    resolve_group_rows,
    resolve_plugin_rows,
)
from pluginctl.core.inventory.types import GroupDiscoveryCriteria, PluginDiscoveryCriteria
from pluginctl.core.models.group import PluginGroup
from pluginctl.core.models.identifier import VERSION_LATEST
from pluginctl.core.models.plugin import DISCOVERY_TYPE_OCI, DiscoveredPlugin

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str, Path], None]

_TRUTHY = ("1", "true", "yes")


class DiscoveryError(Exception):
    """Raised when a discovery source cannot be queried."""


class PluginNotFoundError(DiscoveryError):
    """Raised when a requested plugin or group does not exist."""


def use_cache_only_from_env() -> bool:
    return os.environ.get("PLUGINCTL_USE_CACHE_ONLY", "").strip().lower() in _TRUTHY


def _default_fetcher(image: str, dest_dir: Path) -> None:
    from pluginctl.adapters.imgpkg import pull_image

    pull_image(image, dest_dir)


class CentralInventoryDiscovery:
    """Discovery backed by a central inventory image."""

    type = DISCOVERY_TYPE_OCI

    def __init__(
        self,
        name: str,
        image: str,
        fetcher: ImageFetcher | None = None,
        cache_dir: Path | None = None,
        use_local_cache_only: bool | None = None,
        include_hidden: bool = False,
    ):
        self.name = name
        self.image = image
        self.fetcher = fetcher or _default_fetcher
        self.inventory_dir = (
            cache_dir / paths.INVENTORY_DIR_NAME / name if cache_dir else paths.inventory_dir(name)
        )
        self.use_local_cache_only = (
            use_cache_only_from_env() if use_local_cache_only is None else use_local_cache_only
        )
        self.include_hidden = include_hidden
        self._refreshed = False

    @classmethod
    def from_source(cls, source: DiscoverySource, **kwargs) -> CentralInventoryDiscovery:
        return cls(name=source.name, image=source.image, **kwargs)

    @property
    def db_file(self) -> Path:
        return self.inventory_dir / paths.INVENTORY_DB_FILE_NAME

    # ── Fetch ───────────────────────────────────────────────────

    def refresh(self) -> None:
        """Pull the inventory image, replacing the cached copy.

        The new content is pulled next to the cache directory and swapped
        in only once the pull succeeded, so a failed pull leaves the
        previous inventory usable.
        """
        staging = self.inventory_dir.with_name(f".{self.inventory_dir.name}.pull")
        shutil.rmtree(staging, ignore_errors=True)
        staging.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.fetcher(self.image, staging)
        except Exception as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise DiscoveryError(
                f"failed to get the inventory of discovery {self.name!r} from {self.image}: {e}"
            ) from e

        shutil.rmtree(self.inventory_dir, ignore_errors=True)
        staging.rename(self.inventory_dir)
        self._refreshed = True
        logger.info("Refreshed plugin inventory %s from %s", self.name, self.image)

    def _ensure_inventory(self) -> InventoryDB:
        if not self.use_local_cache_only and not self._refreshed:
            self.refresh()
        if not self.db_file.is_file():
            raise DiscoveryError(
                f"plugin inventory of discovery {self.name!r} not found at {self.db_file}"
            )
        return InventoryDB(self.db_file)

    # ── Queries ─────────────────────────────────────────────────

    def list_plugins(self, criteria: PluginDiscoveryCriteria | None = None) -> list[DiscoveredPlugin]:
        """All plugins matching ``criteria``.

        A version of ``latest`` keeps only each plugin's recommended version.
        """
        db = self._ensure_inventory()
        try:
            plugins = resolve_plugin_rows(
                db.iter_plugin_rows(criteria, include_hidden=self.include_hidden),
                image_prefix=image_prefix_of(self.image),
                source=self.name,
            )
        except InventoryError as e:
            raise DiscoveryError(f"discovery {self.name!r}: {e}") from e

        if criteria is not None and criteria.target is not None:
            plugins = [p for p in plugins if p.target == criteria.target]
        if criteria is not None and criteria.version == VERSION_LATEST:
            for plugin in plugins:
                _restrict_to_version(plugin, plugin.recommended_version)
            plugins = [p for p in plugins if p.supported_versions]
        return plugins

    def describe(self, name: str) -> DiscoveredPlugin:
        """First plugin called ``name``.

        Raises:
            PluginNotFoundError: If no plugin has that name.
        """
        plugins = self.list_plugins(PluginDiscoveryCriteria(name=name))
        if not plugins:
            raise PluginNotFoundError(f"cannot find plugin with name {name!r}")
        return plugins[0]

    def list_groups(self, criteria: GroupDiscoveryCriteria | None = None) -> list[PluginGroup]:
        """Plugin-groups matching ``criteria``.

        A version of ``latest`` keeps only each group's recommended version.
        """
        db = self._ensure_inventory()
        try:
            groups = resolve_group_rows(
                db.iter_group_rows(criteria, include_hidden=self.include_hidden)
            )
        except InventoryError as e:
            raise DiscoveryError(f"discovery {self.name!r}: {e}") from e

        if criteria is not None and criteria.version == VERSION_LATEST:
            for group in groups:
                group.versions = {
                    v: entries
                    for v, entries in group.versions.items()
                    if v == group.recommended_version
                }
        return groups


def _restrict_to_version(plugin: DiscoveredPlugin, version: str) -> None:
    plugin.supported_versions = [v for v in plugin.supported_versions if v == version]
    plugin.distribution = {v: a for v, a in plugin.distribution.items() if v == version}
