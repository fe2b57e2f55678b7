"""
Shared test fixtures and configuration.
"""

import shutil
from pathlib import Path

import pytest

from pluginctl.core.inventory.db import InventoryDB
from pluginctl.core.inventory.types import PluginGroupRow, PluginInventoryRow

INVENTORY_IMAGE = "registry.example.com/plugins/plugin-inventory:latest"


def make_row(
    name: str = "cluster",
    target: str = "kubernetes",
    version: str = "v1.0.0",
    os: str = "linux",
    arch: str = "amd64",
    recommended_version: str = "",
    hidden: str = "false",
    description: str = "",
) -> PluginInventoryRow:
    """One PluginBinaries row with sensible defaults."""
    return PluginInventoryRow(
        name=name,
        target=target,
        recommended_version=recommended_version,
        version=version,
        hidden=hidden,
        description=description or f"{name} plugin",
        publisher="tkg",
        vendor="vmware",
        os=os,
        arch=arch,
        digest=f"sha256-{name}-{version}-{os}-{arch}",
        uri=f"vmware/tkg/{os}/{arch}/{target}/{name}:{version}",
    )


def make_group_row(
    plugin_name: str,
    group_version: str = "v1.0.0",
    plugin_version: str = "v1.0.0",
    target: str = "kubernetes",
    mandatory: str = "true",
    group_name: str = "default",
    hidden: str = "false",
) -> PluginGroupRow:
    return PluginGroupRow(
        vendor="vmware",
        publisher="tkg",
        group_name=group_name,
        group_version=group_version,
        description="Default plugins",
        plugin_name=plugin_name,
        target=target,
        plugin_version=plugin_version,
        mandatory=mandatory,
        hidden=hidden,
    )


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every well-known directory into tmp_path."""
    home = tmp_path / "home"
    monkeypatch.setenv("PLUGINCTL_CONFIG_DIR", str(home / "config"))
    monkeypatch.setenv("PLUGINCTL_CACHE_DIR", str(home / "cache"))
    monkeypatch.setenv("PLUGINCTL_PLUGIN_ROOT", str(home / "plugins"))
    monkeypatch.setenv("PLUGINCTL_VERSION_CHECK_DELAY_DAYS", "0")
    monkeypatch.delenv("PLUGINCTL_DATA_STORE_FILE", raising=False)
    monkeypatch.delenv("PLUGINCTL_USE_CACHE_ONLY", raising=False)
    monkeypatch.delenv("PLUGINCTL_LOG_LEVEL", raising=False)
    return home


@pytest.fixture
def cache_dir(isolated_dirs: Path) -> Path:
    return isolated_dirs / "cache"


@pytest.fixture
def published_inventory(tmp_path: Path) -> Path:
    """A published inventory image's content: DB plus central config."""
    image_dir = tmp_path / "published"
    db = InventoryDB(image_dir / "plugin_inventory.db")
    db.create_schema()
    for row in (
        make_row("cluster", version="v1.0.0"),
        make_row("cluster", version="v1.0.0", os="darwin"),
        make_row("cluster", version="v1.1.0", recommended_version="v1.1.0"),
        make_row("cluster", version="v1.1.0", os="darwin"),
        make_row("cluster", target="mission-control", version="v0.9.0"),
        make_row("secret", target="global", version="v0.2.0"),
        make_row("hidden-tool", target="global", version="v1.0.0", hidden="true"),
    ):
        db.insert_plugin_row(row)
    for row in (
        make_group_row("cluster", group_version="v1.0.0", plugin_version="v1.0.0"),
        make_group_row("secret", group_version="v1.0.0", plugin_version="v0.2.0", target="global", mandatory="false"),
        make_group_row("cluster", group_version="v2.0.0", plugin_version="v1.1.0"),
    ):
        db.insert_group_row(row)
    (image_dir / "central_config.yaml").write_text(
        'cli.core.cli_recommended_versions: "v1.2.0,v1.1.3,v0.90.0"\n'
    )
    return image_dir


@pytest.fixture
def fake_fetcher(published_inventory: Path):
    """Image fetcher that copies the published inventory instead of pulling."""
    pulled: list[str] = []

    def fetch(image: str, dest_dir: Path) -> None:
        pulled.append(image)
        shutil.copytree(published_inventory, dest_dir, dirs_exist_ok=True)

    fetch.pulled = pulled  # type: ignore[attr-defined]
    return fetch


@pytest.fixture
def fake_binary_fetcher():
    """Binary fetcher that writes a stub file and records the image."""
    pulled: list[str] = []

    def fetch(image: str, dest_file: Path) -> None:
        pulled.append(image)
        dest_file.parent.mkdir(parents=True, exist_ok=True)
        dest_file.write_text(f"#!/bin/sh\necho {image}\n")

    fetch.pulled = pulled  # type: ignore[attr-defined]
    return fetch
