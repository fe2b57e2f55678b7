"""
Plugin operations — discover, search, install, delete and sync plugins.

Ties the discovery sources, the local catalog and the plugin root
together.  Running plugins is not part of this module: a plugin is
"installed" once its binary is on disk and the catalog records it.

Binaries are installed to::

    <plugin root>/<name>/<version>_<digest>_<target>
"""

from __future__ import annotations

import logging
import platform
import re
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from pluginctl.core.config import paths
from pluginctl.core.config.loader import CLIConfig, load_config
from pluginctl.core.inventory.discovery import (
    CentralInventoryDiscovery,
    DiscoveryError,
    PluginNotFoundError,
)
from pluginctl.core.inventory.types import GroupDiscoveryCriteria, PluginDiscoveryCriteria
from pluginctl.core.models.group import PluginGroup
from pluginctl.core.models.identifier import VERSION_LATEST, PluginIdentifier
from pluginctl.core.models.plugin import (
    STATUS_INSTALLED,
    STATUS_NOT_INSTALLED,
    STATUS_UPDATE_AVAILABLE,
    ArtifactNotFoundError,
    DiscoveredPlugin,
    PluginDescriptor,
    sort_discovered_plugins,
)
from pluginctl.core.models.target import Target, plugin_name_target
from pluginctl.core.persistence.catalog import ContextCatalog
from pluginctl.core.versions import is_new_version

logger = logging.getLogger(__name__)

BinaryFetcher = Callable[[str, Path], None]

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


class PluginInstallError(Exception):
    """Raised when a plugin cannot be installed."""


class AggregateError(Exception):
    """Several independent failures reported together.

    ``partial`` holds whatever the operation still managed to produce.
    """

    def __init__(self, errors: list[Exception], partial: list | None = None):
        self.errors = errors
        self.partial = partial if partial is not None else []
        super().__init__("\n".join(str(e) for e in errors))


# ═══════════════════════════════════════════════════════════════════
#  Host platform
# ═══════════════════════════════════════════════════════════════════


def host_os() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


# ═══════════════════════════════════════════════════════════════════
#  Discovery
# ═══════════════════════════════════════════════════════════════════


def configured_discoveries(config: CLIConfig | None = None) -> list[CentralInventoryDiscovery]:
    """One discovery per source listed in config.yaml."""
    config = config or load_config()
    return [
        CentralInventoryDiscovery.from_source(source, include_hidden=config.include_hidden_plugins)
        for source in config.discovery_sources
    ]


def discover_standalone_plugins(
    discoveries: Iterable[CentralInventoryDiscovery],
    criteria: PluginDiscoveryCriteria | None = None,
) -> list[DiscoveredPlugin]:
    """Plugins of every discovery source, sorted by name and target.

    Raises:
        AggregateError: If any source failed; ``partial`` carries the
            plugins of the sources that succeeded.
    """
    plugins: list[DiscoveredPlugin] = []
    errors: list[Exception] = []
    for discovery in discoveries:
        try:
            plugins.extend(discovery.list_plugins(criteria))
        except DiscoveryError as e:
            logger.warning("Discovery %s failed: %s", discovery.name, e)
            errors.append(e)

    plugins = sort_discovered_plugins(plugins)
    if errors:
        raise AggregateError(errors, partial=plugins)
    return plugins


def discover_plugin_groups(
    discoveries: Iterable[CentralInventoryDiscovery],
    criteria: GroupDiscoveryCriteria | None = None,
) -> list[PluginGroup]:
    groups: list[PluginGroup] = []
    errors: list[Exception] = []
    for discovery in discoveries:
        try:
            groups.extend(discovery.list_groups(criteria))
        except DiscoveryError as e:
            logger.warning("Discovery %s failed: %s", discovery.name, e)
            errors.append(e)
    if errors:
        raise AggregateError(errors, partial=groups)
    return groups


# ═══════════════════════════════════════════════════════════════════
#  Status and search
# ═══════════════════════════════════════════════════════════════════


def _index_installed(installed: Iterable[PluginDescriptor]) -> dict[str, PluginDescriptor]:
    return {d.catalog_key(): d for d in installed}


def annotate_install_status(
    discovered: list[DiscoveredPlugin],
    installed: Iterable[PluginDescriptor],
) -> list[DiscoveredPlugin]:
    """Set ``installed_version`` and ``status`` from the catalog content."""
    by_key = _index_installed(installed)
    for plugin in discovered:
        descriptor = by_key.get(plugin.key)
        if descriptor is None:
            plugin.installed_version = ""
            plugin.status = STATUS_NOT_INSTALLED
            continue
        plugin.installed_version = descriptor.version
        if is_new_version(plugin.recommended_version, descriptor.version):
            plugin.status = STATUS_UPDATE_AVAILABLE
        else:
            plugin.status = STATUS_INSTALLED
    return discovered


def search_plugins(
    plugins: list[DiscoveredPlugin],
    keyword: str = "",
    use_regex: bool = False,
) -> list[DiscoveredPlugin]:
    """Case-insensitive match on name, description, target and status.

    Raises:
        re.error: If ``use_regex`` is set and ``keyword`` is not a valid pattern.
    """
    if not keyword:
        return list(plugins)
    if use_regex:
        pattern = re.compile(keyword, re.IGNORECASE)
        matches = pattern.search
    else:
        needle = keyword.lower()

        def matches(text: str) -> bool:
            return needle in text.lower()

    return [
        p for p in plugins
        if any(matches(field) for field in (p.name, p.description, p.target.value, p.status))
    ]


def find_installed_and_missing(
    discovered: list[DiscoveredPlugin],
    installed: Iterable[PluginDescriptor],
) -> tuple[list[DiscoveredPlugin], list[DiscoveredPlugin], bool]:
    """Split plugins into installed-at-recommended-version and missing.

    A plugin installed at any other version counts as missing.  Returns
    ``(installed, missing, sync_required)``.
    """
    by_key = _index_installed(installed)
    present: list[DiscoveredPlugin] = []
    missing: list[DiscoveredPlugin] = []
    for plugin in discovered:
        descriptor = by_key.get(plugin.key)
        if descriptor is not None and descriptor.version == plugin.recommended_version:
            plugin.installed_version = descriptor.version
            plugin.status = STATUS_INSTALLED
            present.append(plugin)
        else:
            missing.append(plugin)
    return present, missing, bool(missing)


# ═══════════════════════════════════════════════════════════════════
#  Install
# ═══════════════════════════════════════════════════════════════════


def _default_binary_fetcher(image: str, dest_file: Path) -> None:
    from pluginctl.adapters.imgpkg import pull_file

    pull_file(image, dest_file)


def installation_path(name: str, version: str, digest: str, target: Target) -> Path:
    return paths.plugin_root() / name / f"{version}_{digest}_{target.value}"


def _select_plugin(
    plugins: list[DiscoveredPlugin],
    name: str,
    target: Target | None,
) -> DiscoveredPlugin:
    matching = [p for p in plugins if p.name == name and (target is None or p.target == target)]
    if not matching:
        where = f" for target {target.value}" if target is not None else ""
        raise PluginNotFoundError(f"unable to find plugin {name!r}{where}")

    targets = sorted({p.target.value for p in matching})
    if len(targets) > 1:
        raise PluginInstallError(
            f"unable to uniquely identify plugin {name!r}, it exists for targets "
            f"{', '.join(targets)}; please specify the target"
        )
    return matching[0]


def _resolve_version(plugin: DiscoveredPlugin, version: str) -> str:
    if not version or version == VERSION_LATEST:
        if not plugin.recommended_version:
            raise PluginInstallError(f"plugin {plugin.name!r} has no recommended version")
        return plugin.recommended_version
    if version not in plugin.supported_versions:
        raise PluginNotFoundError(
            f"plugin {plugin.name!r} ({plugin.target.value}) has no version {version!r}"
        )
    return version


def install_discovered_plugin(
    plugin: DiscoveredPlugin,
    version: str = VERSION_LATEST,
    context: str = "",
    group: str = "",
    fetcher: BinaryFetcher | None = None,
    os_name: str | None = None,
    arch: str | None = None,
) -> PluginDescriptor:
    """Fetch one version of ``plugin`` and record it in the catalog.

    Raises:
        PluginNotFoundError: If the version does not exist.
        PluginInstallError: If no artifact fits the platform or the
            download fails.
    """
    version = _resolve_version(plugin, version)
    os_name = os_name or host_os()
    arch = arch or host_arch()
    try:
        artifact = plugin.get_artifact(version, os_name, arch)
    except ArtifactNotFoundError as e:
        raise PluginInstallError(str(e)) from e

    dest = installation_path(plugin.name, version, artifact.digest, plugin.target)
    if dest.is_file():
        logger.info("Plugin %s %s already downloaded to %s", plugin.name, version, dest)
    else:
        fetcher = fetcher or _default_binary_fetcher
        logger.info("Installing plugin %s:%s (%s) from %s", plugin.name, version, plugin.target.value, artifact.image)
        try:
            fetcher(artifact.image or artifact.uri, dest)
        except Exception as e:
            raise PluginInstallError(
                f"unable to download plugin {plugin.name!r} version {version}: {e}"
            ) from e
        dest.chmod(0o755)

    descriptor = PluginDescriptor(
        name=plugin.name,
        description=plugin.description,
        version=version,
        digest=artifact.digest,
        group=group,
        hidden=plugin.hidden,
        target=plugin.target,
        installation_path=str(dest),
        discovery=plugin.source,
        scope=plugin.scope,
        status=STATUS_INSTALLED,
        discovered_recommended_version=plugin.recommended_version,
    )
    ContextCatalog.open(context).upsert(descriptor)
    return descriptor


def install_plugin(
    name: str,
    version: str = VERSION_LATEST,
    target: Target | None = None,
    context: str = "",
    discoveries: list[CentralInventoryDiscovery] | None = None,
    group: str = "",
    fetcher: BinaryFetcher | None = None,
    os_name: str | None = None,
    arch: str | None = None,
) -> PluginDescriptor:
    """Install a standalone plugin by name.

    Raises:
        PluginNotFoundError: If no source has the plugin or version.
        PluginInstallError: If the name is ambiguous across targets, or
            the download fails.
        AggregateError: If a discovery source could not be queried and
            the plugin was not found elsewhere.
    """
    discoveries = discoveries if discoveries is not None else configured_discoveries()
    criteria = PluginDiscoveryCriteria(name=name, target=target)
    try:
        plugins = discover_standalone_plugins(discoveries, criteria)
    except AggregateError as e:
        if not any(p.name == name for p in e.partial):
            raise
        plugins = e.partial

    plugin = _select_plugin(plugins, name, target)
    return install_discovered_plugin(
        plugin, version=version, context=context, group=group,
        fetcher=fetcher, os_name=os_name, arch=arch,
    )


def find_plugin_group(
    group_id: str,
    discoveries: list[CentralInventoryDiscovery] | None = None,
) -> tuple[PluginGroup, str]:
    """Locate a group and resolve the requested version.

    Returns ``(group, version)``.

    Raises:
        InvalidIdentifierError: If ``group_id`` is malformed.
        PluginNotFoundError: If the group or version does not exist.
    """
    identifier = PluginIdentifier.parse_or_raise(group_id).with_default_version()
    discoveries = discoveries if discoveries is not None else configured_discoveries()
    criteria = GroupDiscoveryCriteria(
        vendor=identifier.vendor, publisher=identifier.publisher, name=identifier.name,
    )
    groups = discover_plugin_groups(discoveries, criteria)
    if not groups:
        raise PluginNotFoundError(f"plugin-group {identifier.id!r} not found")

    group = groups[0]
    version = group.recommended_version if identifier.version == VERSION_LATEST else identifier.version
    if version not in group.versions:
        raise PluginNotFoundError(f"plugin-group {identifier.id!r} has no version {version!r}")
    return group, version


def install_plugin_group(
    group_id: str,
    context: str = "",
    discoveries: list[CentralInventoryDiscovery] | None = None,
    include_optional: bool = False,
    fetcher: BinaryFetcher | None = None,
    os_name: str | None = None,
    arch: str | None = None,
) -> list[PluginDescriptor]:
    """Install every plugin of a group version.

    Each plugin is attempted even when a previous one failed.

    Raises:
        AggregateError: Listing every plugin that failed; ``partial``
            holds the descriptors that were installed.
    """
    discoveries = discoveries if discoveries is not None else configured_discoveries()
    group, version = find_plugin_group(group_id, discoveries)
    group_ref = group.identifier(version).format()

    installed: list[PluginDescriptor] = []
    errors: list[Exception] = []
    for entry in group.plugins_for(version, include_optional=include_optional):
        try:
            installed.append(install_plugin(
                entry.name, version=entry.version, target=entry.target, context=context,
                discoveries=discoveries, group=group_ref,
                fetcher=fetcher, os_name=os_name, arch=arch,
            ))
        except (DiscoveryError, PluginInstallError, AggregateError) as e:
            logger.warning("Failed to install %s from group %s: %s", entry.name, group_ref, e)
            errors.append(e)

    if errors:
        raise AggregateError(errors, partial=installed)
    logger.info("Installed %d plugins from group %s", len(installed), group_ref)
    return installed


# ═══════════════════════════════════════════════════════════════════
#  Delete and sync
# ═══════════════════════════════════════════════════════════════════


def delete_plugin(name: str, target: Target | None = None, context: str = "") -> PluginDescriptor:
    """Remove a plugin from the catalog scope of ``context``.

    Raises:
        PluginNotFoundError: If the plugin is not installed in that scope.
        PluginInstallError: If ``target`` is omitted and the name is
            installed for several targets.
    """
    catalog = ContextCatalog.open(context)
    candidates = [
        d for d in catalog.list()
        if d.name == name and (target is None or d.target == target)
    ]
    if not candidates:
        raise PluginNotFoundError(f"unable to find plugin {name!r} in the catalog")
    if len(candidates) > 1:
        targets = ", ".join(sorted(d.target.value for d in candidates))
        raise PluginInstallError(
            f"plugin {name!r} is installed for targets {targets}; please specify the target"
        )

    descriptor = candidates[0]
    catalog.delete(descriptor.name, descriptor.target)
    logger.info("Deleted plugin %s", plugin_name_target(descriptor.name, descriptor.target))
    return descriptor


def sync_plugins(
    context_plugins: list[DiscoveredPlugin],
    context: str,
    fetcher: BinaryFetcher | None = None,
    os_name: str | None = None,
    arch: str | None = None,
) -> list[PluginDescriptor]:
    """Install the recommended version of every missing context plugin.

    Raises:
        AggregateError: Listing each plugin that failed to install.
    """
    catalog = ContextCatalog.open(context)
    _, missing, sync_required = find_installed_and_missing(context_plugins, catalog.list())
    if not sync_required:
        logger.info("All plugins of context %r are up to date", context)
        return []

    installed: list[PluginDescriptor] = []
    errors: list[Exception] = []
    for plugin in missing:
        try:
            installed.append(install_discovered_plugin(
                plugin, version=VERSION_LATEST, context=context,
                fetcher=fetcher, os_name=os_name, arch=arch,
            ))
        except (DiscoveryError, PluginInstallError) as e:
            errors.append(e)

    if errors:
        raise AggregateError(errors, partial=installed)
    return installed
