"""
CLI commands for plugin lifecycle management.

Thin wrappers over ``pluginctl.core.services.plugin_ops``.
"""

from __future__ import annotations

import json
import sys

import click
import yaml

_TARGET_CHOICES = ["k8s", "kubernetes", "tmc", "mission-control", "global"]

_target_option = click.option(
    "--target",
    "-t",
    "target",
    type=click.Choice(_TARGET_CHOICES, case_sensitive=False),
    default=None,
    help="Target of the plugin.",
)
_json_option = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")


def _resolve_context(ctx: click.Context) -> str:
    """Context from --context, else the current context of config.yaml."""
    context = (ctx.obj or {}).get("context")
    if context is not None:
        return context
    config = (ctx.obj or {}).get("config")
    if config is None:
        from pluginctl.core.config.loader import load_config

        config = load_config()
    return config.current_context


def _parse_target(target: str | None):
    if target is None:
        return None
    from pluginctl.core.models.target import Target

    return Target.from_string(target)


def _fail(message: str, as_json: bool = False) -> None:
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def _report_partial(err) -> None:
    for e in err.errors:
        click.secho(f"⚠️  {e}", fg="yellow", err=True)


def _plugin_table(plugins) -> None:
    click.echo(f"   {'NAME':<24} {'TARGET':<16} {'VERSION':<12} {'STATUS':<18} DESCRIPTION")
    for p in plugins:
        version = p.installed_version or p.recommended_version
        click.echo(
            f"   {p.name:<24} {p.target.value:<16} {version:<12} {p.status:<18} {p.description}"
        )


@click.group()
@click.pass_context
def plugin(ctx: click.Context) -> None:
    """Plugins — search, install, delete, sync."""
    from pluginctl.core.config.loader import ConfigError, load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except ConfigError as e:
        _fail(str(e))


# ── Discover ────────────────────────────────────────────────────


@plugin.command()
@click.argument("keyword", required=False, default="")
@click.option("--regex", "use_regex", is_flag=True, help="Treat KEYWORD as a regular expression.")
@_target_option
@_json_option
@click.pass_context
def search(ctx: click.Context, keyword: str, use_regex: bool, target: str | None, as_json: bool) -> None:
    """Search the discovery sources for plugins."""
    import re

    from pluginctl.core.inventory.types import PluginDiscoveryCriteria
    from pluginctl.core.persistence.catalog import CatalogError, ContextCatalog
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        annotate_install_status,
        configured_discoveries,
        discover_standalone_plugins,
        search_plugins,
    )

    criteria = PluginDiscoveryCriteria(target=_parse_target(target))
    try:
        plugins = discover_standalone_plugins(configured_discoveries(), criteria)
    except AggregateError as e:
        if not e.partial:
            _fail(str(e), as_json)
        _report_partial(e)
        plugins = e.partial

    try:
        installed = ContextCatalog.open(_resolve_context(ctx)).list()
    except CatalogError as e:
        _fail(str(e), as_json)
    annotate_install_status(plugins, installed)
    try:
        plugins = search_plugins(plugins, keyword, use_regex=use_regex)
    except re.error as e:
        _fail(f"invalid regular expression {keyword!r}: {e}", as_json)

    if as_json:
        click.echo(json.dumps([p.model_dump(mode="json") for p in plugins], indent=2))
        return

    if not plugins:
        click.secho("⚠️  No plugins found", fg="yellow")
        return

    click.secho(f"🔌 Plugins ({len(plugins)}):", fg="cyan", bold=True)
    _plugin_table(plugins)
    click.echo()


@plugin.command("list")
@_json_option
@click.pass_context
def list_(ctx: click.Context, as_json: bool) -> None:
    """List installed plugins."""
    from pluginctl.core.persistence.catalog import CatalogError, ContextCatalog
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        configured_discoveries,
        discover_standalone_plugins,
    )

    context = _resolve_context(ctx)
    try:
        installed = ContextCatalog.open("").list()
        if context:
            installed += ContextCatalog.open(context).list()
    except CatalogError as e:
        _fail(str(e), as_json)

    # Recommended versions, for "update available" hints
    try:
        discovered = discover_standalone_plugins(configured_discoveries())
    except AggregateError as e:
        _report_partial(e)
        discovered = e.partial
    recommended = {p.key: p.recommended_version for p in discovered}

    from pluginctl.core.versions import is_new_version

    rows = []
    for d in installed:
        latest = recommended.get(d.catalog_key(), "")
        status = "update available" if latest and is_new_version(latest, d.version) else "installed"
        rows.append({
            "name": d.name,
            "target": d.target.value,
            "version": d.version,
            "status": status,
            "scope": d.scope,
            "context": context if d.scope == "Context" else "",
            "description": d.description,
        })

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.secho("⚠️  No plugins installed", fg="yellow")
        return

    click.secho(f"🔌 Installed plugins ({len(rows)}):", fg="cyan", bold=True)
    click.echo(f"   {'NAME':<24} {'TARGET':<16} {'VERSION':<12} {'STATUS':<18} DESCRIPTION")
    for r in rows:
        click.echo(
            f"   {r['name']:<24} {r['target']:<16} {r['version']:<12} {r['status']:<18} {r['description']}"
        )
    click.echo()


@plugin.command()
@click.argument("name")
@_target_option
@_json_option
def describe(name: str, target: str | None, as_json: bool) -> None:
    """Describe a plugin known to the discovery sources."""
    from pluginctl.core.inventory.types import PluginDiscoveryCriteria
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        configured_discoveries,
        discover_standalone_plugins,
    )

    criteria = PluginDiscoveryCriteria(name=name, target=_parse_target(target))
    try:
        plugins = discover_standalone_plugins(configured_discoveries(), criteria)
    except AggregateError as e:
        if not e.partial:
            _fail(str(e), as_json)
        plugins = e.partial

    if not plugins:
        _fail(f"plugin {name!r} not found", as_json)

    data = [p.model_dump(mode="json") for p in plugins]
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


# ── Install / delete ────────────────────────────────────────────


@plugin.command()
@click.argument("name", required=False, default="all")
@click.option("--version", "version", default="latest", help="Version to install (default: recommended).")
@_target_option
@click.option("--group", "group_id", default=None, help="Install the plugins of a plugin-group (vendor-publisher/name[:version]).")
@click.option("--include-optional", is_flag=True, help="With --group, also install optional plugins.")
def install(
    name: str,
    version: str,
    target: str | None,
    group_id: str | None,
    include_optional: bool,
) -> None:
    """Install a plugin, or every plugin of a group."""
    from pluginctl.core.inventory.discovery import DiscoveryError
    from pluginctl.core.models.identifier import InvalidIdentifierError
    from pluginctl.core.persistence.catalog import CatalogError
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        PluginInstallError,
        install_plugin,
        install_plugin_group,
    )

    if group_id:
        if name != "all":
            _fail("a plugin name cannot be combined with --group; use 'all'")
        try:
            installed = install_plugin_group(group_id, include_optional=include_optional)
        except AggregateError as e:
            for d in e.partial:
                click.secho(f"✅ Installed {d.name} {d.version}", fg="green")
            _fail(f"failed to install some plugins of {group_id}:\n{e}")
        except (InvalidIdentifierError, DiscoveryError, CatalogError) as e:
            _fail(str(e))
        for d in installed:
            click.secho(f"✅ Installed {d.name} {d.version} ({d.target.value})", fg="green")
        return

    if name == "all":
        _fail("missing plugin name (or use --group)")

    try:
        d = install_plugin(name, version=version, target=_parse_target(target))
    except (AggregateError, DiscoveryError, PluginInstallError, CatalogError) as e:
        _fail(str(e))
    click.secho(f"✅ Installed plugin {d.name}:{d.version} with target {d.target.value}", fg="green")


@plugin.command()
@click.argument("name")
@_target_option
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def delete(name: str, target: str | None, yes: bool) -> None:
    """Uninstall a plugin from the current scope."""
    from pluginctl.core.inventory.discovery import DiscoveryError
    from pluginctl.core.persistence.catalog import CatalogError
    from pluginctl.core.services.plugin_ops import PluginInstallError, delete_plugin

    if not yes:
        click.confirm(f"Deleting plugin {name!r}. Are you sure?", abort=True)

    # Context plugins are managed by sync; delete only touches the standalone scope
    try:
        d = delete_plugin(name, target=_parse_target(target), context="")
    except (DiscoveryError, PluginInstallError, CatalogError) as e:
        _fail(str(e))
    click.secho(f"✅ Deleted plugin {d.name} ({d.target.value})", fg="green")


@plugin.command()
def clean() -> None:
    """Remove the local plugin catalog."""
    from pluginctl.core.persistence.catalog import CatalogError, clean_catalog_cache

    try:
        clean_catalog_cache()
    except CatalogError as e:
        _fail(str(e))
    click.secho("✅ Plugin catalog cleaned", fg="green")


@plugin.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Update the plugins of the current context to their recommended versions."""
    from pluginctl.core.models.plugin import SCOPE_CONTEXT
    from pluginctl.core.persistence.catalog import CatalogError, ContextCatalog
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        configured_discoveries,
        discover_standalone_plugins,
        sync_plugins,
    )

    context = _resolve_context(ctx)
    if not context:
        _fail("no active context; pass --context or set current_context in config.yaml")

    try:
        wanted = {d.catalog_key() for d in ContextCatalog.open(context).list()}
    except CatalogError as e:
        _fail(str(e))
    try:
        discovered = discover_standalone_plugins(configured_discoveries())
    except AggregateError as e:
        _report_partial(e)
        discovered = e.partial

    context_plugins = []
    for p in discovered:
        if p.key in wanted:
            p.scope = SCOPE_CONTEXT
            p.context_name = context
            context_plugins.append(p)

    try:
        installed = sync_plugins(context_plugins, context)
    except AggregateError as e:
        _fail(f"failed to sync some plugins:\n{e}")
    except CatalogError as e:
        _fail(str(e))

    if not installed:
        click.secho("✅ All plugins up to date", fg="green")
        return
    for d in installed:
        click.secho(f"✅ Installed {d.name} {d.version} ({d.target.value})", fg="green")


# ── Plugin groups ───────────────────────────────────────────────


@plugin.group()
def group() -> None:
    """Plugin-groups — search and inspect."""


@group.command("search")
@click.option("--name", "-n", "group_id", default="", help="Limit to one group (vendor-publisher/name).")
@click.option("--show-details", is_flag=True, help="Show every version of each group.")
@_json_option
def group_search(group_id: str, show_details: bool, as_json: bool) -> None:
    """Search the discovery sources for plugin-groups."""
    from pluginctl.core.inventory.types import GroupDiscoveryCriteria
    from pluginctl.core.models.identifier import PluginIdentifier
    from pluginctl.core.services.plugin_ops import (
        AggregateError,
        configured_discoveries,
        discover_plugin_groups,
    )

    criteria = GroupDiscoveryCriteria()
    if group_id:
        ident = PluginIdentifier.parse(group_id)
        if ident is None:
            _fail(f"incorrect plugin-group {group_id!r} specified", as_json)
        criteria = GroupDiscoveryCriteria(vendor=ident.vendor, publisher=ident.publisher, name=ident.name)

    try:
        groups = discover_plugin_groups(configured_discoveries(), criteria)
    except AggregateError as e:
        if not e.partial:
            _fail(str(e), as_json)
        _report_partial(e)
        groups = e.partial

    if as_json:
        click.echo(json.dumps([g.model_dump(mode="json") for g in groups], indent=2))
        return

    if not groups:
        click.secho("⚠️  No plugin-groups found", fg="yellow")
        return

    click.secho(f"📦 Plugin-groups ({len(groups)}):", fg="cyan", bold=True)
    for g in groups:
        click.echo(f"   {g.group_id:<40} {g.recommended_version:<12} {g.description}")
        if show_details:
            click.echo(f"      Versions: {', '.join(g.sorted_versions())}")
    click.echo()


@group.command("get")
@click.argument("group_id")
@click.option("--all", "include_optional", is_flag=True, help="Include optional plugins.")
@_json_option
def group_get(group_id: str, include_optional: bool, as_json: bool) -> None:
    """Show the plugins of a plugin-group version."""
    from pluginctl.core.inventory.discovery import DiscoveryError
    from pluginctl.core.models.identifier import InvalidIdentifierError
    from pluginctl.core.services.plugin_ops import AggregateError, find_plugin_group

    try:
        grp, version = find_plugin_group(group_id)
    except (InvalidIdentifierError, DiscoveryError, AggregateError) as e:
        _fail(str(e), as_json)

    entries = grp.plugins_for(version, include_optional=include_optional)
    if as_json:
        click.echo(json.dumps({
            "group": grp.identifier(version).format(),
            "plugins": [e.model_dump(mode="json") for e in entries],
        }, indent=2))
        return

    click.secho(f"📦 {grp.identifier(version).format()}", fg="cyan", bold=True)
    click.echo(f"   {'NAME':<24} {'TARGET':<16} {'VERSION':<12} MANDATORY")
    for e in entries:
        click.echo(f"   {e.name:<24} {e.target.value:<16} {e.version:<12} {'yes' if e.mandatory else 'no'}")
    click.echo()
