"""
Plugin models — what a discovery source knows about a plugin, and what
the local catalog records about an installed one.

DiscoveredPlugin is the serialization-independent view of "which
versions of this plugin exist, for which platforms".  PluginDescriptor
is the installed-side record persisted in the catalog.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from pluginctl.core.models.target import Target, plugin_name_target
from pluginctl.core.versions import highest_version, sort_versions

logger = logging.getLogger(__name__)

# ── Status and scope values ─────────────────────────────────────

STATUS_INSTALLED = "installed"
STATUS_NOT_INSTALLED = "not installed"
STATUS_UPDATE_AVAILABLE = "update available"

SCOPE_STANDALONE = "Standalone"
SCOPE_CONTEXT = "Context"

DISCOVERY_TYPE_OCI = "oci"
DISCOVERY_TYPE_LOCAL = "local"

PluginStatus = Literal["installed", "not installed", "update available"]


class ArtifactNotFoundError(LookupError):
    """Raised when no artifact matches a version/OS/arch request."""


class Artifact(BaseModel):
    """One downloadable binary for a (version, OS, arch) combination."""

    os: str
    arch: str
    image: str = ""    # full image reference
    uri: str = ""      # direct download URI, when not image-based
    digest: str = ""


def compute_recommended_version(supported_versions: list[str]) -> str:
    """Pick the version to install when the caller does not pin one.

    Returns the highest semantic version, or "" for an empty list.  An
    empty result means the plugin record is broken.
    """
    if not supported_versions:
        return ""
    try:
        return highest_version(supported_versions)
    except ValueError:
        # Unparseable versions: fall back to the source ordering
        return supported_versions[-1]


class DiscoveredPlugin(BaseModel):
    """A plugin as known to a discovery source.

    (name, target) is unique within one source.  Once finalized,
    ``supported_versions`` is non-empty and sorted ascending, and
    ``recommended_version`` is one of its members.
    """

    name: str
    target: Target = Target.GLOBAL
    description: str = ""

    recommended_version: str = ""
    supported_versions: list[str] = Field(default_factory=list)
    distribution: dict[str, list[Artifact]] = Field(default_factory=dict)

    optional: bool = False
    hidden: bool = False
    scope: str = SCOPE_STANDALONE
    context_name: str = ""
    source: str = ""
    discovery_type: str = DISCOVERY_TYPE_OCI

    # Computed from the local catalog, not part of discovery data
    installed_version: str = ""
    status: str = STATUS_NOT_INSTALLED

    @property
    def key(self) -> str:
        return plugin_name_target(self.name, self.target)

    def finalize(self) -> None:
        """Sort versions and fill in the recommended version if missing."""
        try:
            sort_versions(self.supported_versions)
        except ValueError as e:
            logger.warning("Error parsing supported versions for plugin %s: %s", self.name, e)
        if not self.recommended_version:
            self.recommended_version = compute_recommended_version(self.supported_versions)

    def artifacts_for(self, version: str) -> list[Artifact]:
        return self.distribution.get(version, [])

    def get_artifact(self, version: str, os_name: str, arch: str) -> Artifact:
        """Select the artifact for one platform.

        Raises:
            ArtifactNotFoundError: If the version or platform is not available.
        """
        if version not in self.distribution:
            raise ArtifactNotFoundError(
                f"plugin {self.name!r} ({self.target.value}) has no version {version!r}"
            )
        for artifact in self.distribution[version]:
            if artifact.os == os_name and artifact.arch == arch:
                return artifact
        raise ArtifactNotFoundError(
            f"plugin {self.name!r} ({self.target.value}) version {version} "
            f"is not available for {os_name}/{arch}"
        )

    def installed_or_recommended_version(self) -> str:
        return self.installed_version or self.recommended_version


class PluginDescriptor(BaseModel):
    """An installed plugin, as recorded in the local catalog."""

    name: str
    description: str = ""
    version: str = ""
    build_sha: str = ""
    digest: str = ""
    group: str = ""
    doc_url: str = ""
    hidden: bool = False
    target: Target = Target.GLOBAL
    installation_path: str = ""
    discovery: str = ""
    scope: str = SCOPE_STANDALONE
    status: str = ""
    discovered_recommended_version: str = ""

    def catalog_key(self) -> str:
        return plugin_name_target(self.name, self.target)


def sort_discovered_plugins(plugins: list[DiscoveredPlugin]) -> list[DiscoveredPlugin]:
    """Return plugins ordered by name, then target."""
    return sorted(plugins, key=lambda p: (p.name, p.target.value))
