"""
Domain models — plugin inventory and installed-plugin types.

All models are re-exported here for convenient access:

    from pluginctl.core.models import DiscoveredPlugin, PluginGroup, Target
"""

from pluginctl.core.models.group import PluginGroup, PluginGroupEntry
from pluginctl.core.models.identifier import (
    VERSION_LATEST,
    InvalidIdentifierError,
    PluginIdentifier,
)
from pluginctl.core.models.plugin import (
    SCOPE_CONTEXT,
    SCOPE_STANDALONE,
    STATUS_INSTALLED,
    STATUS_NOT_INSTALLED,
    STATUS_UPDATE_AVAILABLE,
    Artifact,
    ArtifactNotFoundError,
    DiscoveredPlugin,
    PluginDescriptor,
    compute_recommended_version,
    sort_discovered_plugins,
)
from pluginctl.core.models.target import TARGET_LIST, Target, plugin_name_target

__all__ = [
    # group.py
    "PluginGroup",
    "PluginGroupEntry",
    # identifier.py
    "VERSION_LATEST",
    "InvalidIdentifierError",
    "PluginIdentifier",
    # plugin.py
    "SCOPE_CONTEXT",
    "SCOPE_STANDALONE",
    "STATUS_INSTALLED",
    "STATUS_NOT_INSTALLED",
    "STATUS_UPDATE_AVAILABLE",
    "Artifact",
    "ArtifactNotFoundError",
    "DiscoveredPlugin",
    "PluginDescriptor",
    "compute_recommended_version",
    "sort_discovered_plugins",
    # target.py
    "TARGET_LIST",
    "Target",
    "plugin_name_target",
]
