"""
Plugin-group model — a named, versioned list of plugin name/version
combinations that can be installed in one step.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from pluginctl.core.models.identifier import PluginIdentifier
from pluginctl.core.models.target import Target
from pluginctl.core.versions import sort_versions

logger = logging.getLogger(__name__)


class PluginGroupEntry(BaseModel):
    """One plugin listed in a group version."""

    name: str
    target: Target = Target.GLOBAL
    version: str
    mandatory: bool = True


class PluginGroup(BaseModel):
    """A plugin-group and every version of its content.

    Every version in ``versions`` maps to at least one entry.
    """

    vendor: str
    publisher: str
    name: str
    description: str = ""
    hidden: bool = False
    recommended_version: str = ""
    versions: dict[str, list[PluginGroupEntry]] = Field(default_factory=dict)

    def identifier(self, version: str = "") -> PluginIdentifier:
        return PluginIdentifier(
            vendor=self.vendor, publisher=self.publisher, name=self.name, version=version
        )

    @property
    def group_id(self) -> str:
        """``vendor-publisher/name``."""
        return self.identifier().id

    def sorted_versions(self) -> list[str]:
        versions = list(self.versions)
        try:
            sort_versions(versions)
        except ValueError as e:
            logger.warning("Error sorting versions of group %s: %s", self.group_id, e)
        return versions

    def plugins_for(self, version: str, include_optional: bool = False) -> list[PluginGroupEntry]:
        """Plugins of one group version; optional ones only when asked."""
        entries = self.versions.get(version, [])
        if include_optional:
            return list(entries)
        return [e for e in entries if e.mandatory]
