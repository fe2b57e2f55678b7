"""
Inventory row and query types.

A plugin inventory row is one (plugin, target, version, OS, arch)
artifact tuple, exactly as stored in the ``PluginBinaries`` table.  A
group row is one plugin entry of one plugin-group version, as stored in
the ``PluginGroups`` table.
"""

from __future__ import annotations

from dataclasses import dataclass

from pluginctl.core.models.target import Target


@dataclass
class PluginInventoryRow:
    name: str
    target: str
    recommended_version: str
    version: str
    hidden: str
    description: str
    publisher: str
    vendor: str
    os: str
    arch: str
    digest: str
    uri: str  # relative to the inventory image location


@dataclass
class PluginGroupRow:
    vendor: str
    publisher: str
    group_name: str
    group_version: str
    description: str
    plugin_name: str
    target: str
    plugin_version: str
    mandatory: str
    hidden: str


@dataclass
class PluginDiscoveryCriteria:
    """Narrows a plugin query; empty fields match everything.

    ``version`` may be ``latest`` to keep only the recommended version.
    """

    name: str = ""
    target: Target | None = None
    version: str = ""
    os: str = ""
    arch: str = ""


@dataclass
class GroupDiscoveryCriteria:
    """Narrows a plugin-group query; empty fields match everything."""

    vendor: str = ""
    publisher: str = ""
    name: str = ""
    version: str = ""


def parse_bool(value: str | None) -> bool:
    """Inventory booleans are stored as the text ``true``/``false``."""
    return (value or "").strip().lower() == "true"
