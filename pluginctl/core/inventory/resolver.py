"""
Discovery resolution — flat inventory rows to plugin records.

Input rows arrive sorted by (name, target, version), one row per
artifact.  The resolver makes a single left-to-right pass with three
transitions:

    plugin boundary   (name, target) changed: close the open version,
                      finalize the open plugin, start a new one
    version boundary  version changed within the plugin: close the open
                      version's artifact list, open the new version
    end of stream     close whatever is still open

Because input is sorted, a version is appended to ``supported_versions``
exactly once without any de-duplication check.

Artifact images in the central inventory are relative to the inventory
image's own location, which keeps the inventory portable across
registry mirrors.  An inventory published as
``registry.example.com/plugins/plugin-inventory:latest`` with a row URI
``vmware/tkg/linux/amd64/k8s/cluster:v1.0.0`` resolves to
``registry.example.com/plugins/vmware/tkg/linux/amd64/k8s/cluster:v1.0.0``.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable
from contextlib import closing
from typing import Any

from pluginctl.core.inventory.types import PluginGroupRow, PluginInventoryRow, parse_bool
from pluginctl.core.models.group import PluginGroup, PluginGroupEntry
from pluginctl.core.models.plugin import (
    DISCOVERY_TYPE_OCI,
    SCOPE_STANDALONE,
    STATUS_NOT_INSTALLED,
    Artifact,
    DiscoveredPlugin,
)
from pluginctl.core.models.target import Target, plugin_name_target
from pluginctl.core.versions import highest_version

logger = logging.getLogger(__name__)


def image_prefix_of(image: str) -> str:
    """Registry path of an image, without its last path segment."""
    return posixpath.dirname(image)


class PluginResolver:
    """State machine grouping plugin rows into DiscoveredPlugin records."""

    def __init__(self, image_prefix: str, source: str = "", discovery_type: str = DISCOVERY_TYPE_OCI):
        self.image_prefix = image_prefix
        self.source = source
        self.discovery_type = discovery_type

        self.current_key: str | None = None
        self.open_plugin: DiscoveredPlugin | None = None
        self.open_version: str | None = None
        self.open_artifacts: list[Artifact] = []
        self.plugins: list[DiscoveredPlugin] = []

    def feed(self, row: PluginInventoryRow) -> None:
        target = Target.from_string(row.target)
        key = plugin_name_target(row.name, target)

        if key != self.current_key:
            self._flush_plugin()
            self._start_plugin(row, target)
            self.current_key = key

        plugin = self.open_plugin
        assert plugin is not None  # set by _start_plugin above

        if row.version != self.open_version:
            self._flush_version()
            self.open_version = row.version
            if row.version not in plugin.supported_versions:
                plugin.supported_versions.append(row.version)

        if not plugin.recommended_version and row.recommended_version:
            plugin.recommended_version = row.recommended_version

        self.open_artifacts.append(self._artifact(row))

    def finish(self) -> list[DiscoveredPlugin]:
        """Flush the last plugin and return every resolved record."""
        self._flush_plugin()
        self.current_key = None
        return self.plugins

    # ── Transitions ─────────────────────────────────────────────

    def _start_plugin(self, row: PluginInventoryRow, target: Target) -> None:
        self.open_plugin = DiscoveredPlugin(
            name=row.name,
            target=target,
            description=row.description,
            recommended_version=row.recommended_version,
            hidden=parse_bool(row.hidden),
            scope=SCOPE_STANDALONE,
            source=self.source,
            discovery_type=self.discovery_type,
            status=STATUS_NOT_INSTALLED,
        )
        self.open_version = None
        self.open_artifacts = []

    def _flush_version(self) -> None:
        if self.open_plugin is not None and self.open_version is not None:
            # Aliased targets may revisit a version already flushed
            self.open_plugin.distribution.setdefault(self.open_version, []).extend(self.open_artifacts)
        self.open_artifacts = []

    def _flush_plugin(self) -> None:
        if self.open_plugin is None:
            return
        self._flush_version()
        self.open_plugin.finalize()
        self.plugins.append(self.open_plugin)
        self.open_plugin = None
        self.open_version = None

    def _artifact(self, row: PluginInventoryRow) -> Artifact:
        image = f"{self.image_prefix}/{row.uri}" if self.image_prefix else row.uri
        return Artifact(os=row.os, arch=row.arch, image=image, digest=row.digest)


def _drain(rows: Iterable[Any], feed: Any) -> None:
    # Close the row source on every exit path, including errors
    iterator = iter(rows)
    if hasattr(iterator, "close"):
        with closing(iterator):  # type: ignore[type-var]
            for row in iterator:
                feed(row)
    else:
        for row in iterator:
            feed(row)


def resolve_plugin_rows(
    rows: Iterable[PluginInventoryRow],
    image_prefix: str,
    source: str = "",
) -> list[DiscoveredPlugin]:
    """Resolve sorted plugin rows; any row-source error aborts the whole call."""
    resolver = PluginResolver(image_prefix=image_prefix, source=source)
    _drain(rows, resolver.feed)
    plugins = resolver.finish()
    logger.debug("Resolved %d plugins from %s", len(plugins), source or "rows")
    return plugins


class GroupResolver:
    """Groups plugin-group rows into PluginGroup records.

    Rows must be sorted by (vendor, publisher, group name, group version).
    """

    def __init__(self) -> None:
        self.current_key: tuple[str, str, str] | None = None
        self.open_group: PluginGroup | None = None
        self.groups: list[PluginGroup] = []

    def feed(self, row: PluginGroupRow) -> None:
        key = (row.vendor, row.publisher, row.group_name)
        if key != self.current_key:
            self._flush_group()
            self.open_group = PluginGroup(
                vendor=row.vendor,
                publisher=row.publisher,
                name=row.group_name,
                description=row.description,
                hidden=parse_bool(row.hidden),
            )
            self.current_key = key

        group = self.open_group
        assert group is not None
        group.versions.setdefault(row.group_version, []).append(
            PluginGroupEntry(
                name=row.plugin_name,
                target=Target.from_string(row.target),
                version=row.plugin_version,
                mandatory=parse_bool(row.mandatory),
            )
        )

    def finish(self) -> list[PluginGroup]:
        self._flush_group()
        self.current_key = None
        return self.groups

    def _flush_group(self) -> None:
        if self.open_group is None:
            return
        try:
            self.open_group.recommended_version = highest_version(list(self.open_group.versions))
        except ValueError as e:
            logger.warning("Error parsing versions of group %s: %s", self.open_group.group_id, e)
            self.open_group.recommended_version = list(self.open_group.versions)[-1]
        self.groups.append(self.open_group)
        self.open_group = None


def resolve_group_rows(rows: Iterable[PluginGroupRow]) -> list[PluginGroup]:
    resolver = GroupResolver()
    _drain(rows, resolver.feed)
    return resolver.finish()
