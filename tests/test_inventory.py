"""
Tests for the inventory database and central inventory discovery.
"""

import shutil
from pathlib import Path

import pytest

from conftest import INVENTORY_IMAGE, make_row
from pluginctl.core.inventory.db import InventoryDB, InventoryError
from pluginctl.core.inventory.discovery import (
    CentralInventoryDiscovery,
    DiscoveryError,
    PluginNotFoundError,
)
from pluginctl.core.inventory.types import GroupDiscoveryCriteria, PluginDiscoveryCriteria
from pluginctl.core.models import Target


class TestInventoryDB:
    def test_rows_ordered_and_hidden_filtered(self, published_inventory: Path):
        db = InventoryDB(published_inventory / "plugin_inventory.db")
        rows = list(db.iter_plugin_rows())
        keys = [(r.name, r.target, r.version) for r in rows]
        assert keys == sorted(keys)
        assert "hidden-tool" not in {r.name for r in rows}

        with_hidden = list(db.iter_plugin_rows(include_hidden=True))
        assert "hidden-tool" in {r.name for r in with_hidden}

    def test_criteria(self, published_inventory: Path):
        db = InventoryDB(published_inventory / "plugin_inventory.db")
        rows = list(db.iter_plugin_rows(PluginDiscoveryCriteria(
            name="cluster", target=Target.KUBERNETES, version="v1.1.0", os="darwin",
        )))
        assert len(rows) == 1
        assert (rows[0].version, rows[0].os) == ("v1.1.0", "darwin")

    def test_target_is_not_a_sql_filter(self, published_inventory: Path):
        db = InventoryDB(published_inventory / "plugin_inventory.db")
        rows = list(db.iter_plugin_rows(PluginDiscoveryCriteria(name="cluster", target=Target.GLOBAL)))
        assert {r.target for r in rows} == {"kubernetes", "mission-control"}

    def test_latest_is_not_a_sql_filter(self, published_inventory: Path):
        db = InventoryDB(published_inventory / "plugin_inventory.db")
        rows = list(db.iter_plugin_rows(PluginDiscoveryCriteria(name="cluster", version="latest")))
        assert {r.version for r in rows} == {"v0.9.0", "v1.0.0", "v1.1.0"}

    def test_missing_db(self, tmp_path: Path):
        db = InventoryDB(tmp_path / "nope.db")
        with pytest.raises(InventoryError, match="nope.db"):
            list(db.iter_plugin_rows())

    def test_corrupt_db(self, tmp_path: Path):
        path = tmp_path / "corrupt.db"
        path.write_text("this is not sqlite")
        with pytest.raises(InventoryError, match="corrupt.db"):
            list(InventoryDB(path).iter_plugin_rows())

    def test_duplicate_row_rejected(self, tmp_path: Path):
        db = InventoryDB(tmp_path / "inv.db")
        db.create_schema()
        db.insert_plugin_row(make_row())
        with pytest.raises(InventoryError, match="cluster"):
            db.insert_plugin_row(make_row())


class TestCentralInventoryDiscovery:
    def _discovery(self, fetcher, **kwargs) -> CentralInventoryDiscovery:
        return CentralInventoryDiscovery("default", INVENTORY_IMAGE, fetcher=fetcher, **kwargs)

    def test_list_plugins(self, fake_fetcher, cache_dir: Path):
        discovery = self._discovery(fake_fetcher)
        plugins = discovery.list_plugins()

        assert fake_fetcher.pulled == [INVENTORY_IMAGE]
        assert discovery.db_file == cache_dir / "plugin_inventory" / "default" / "plugin_inventory.db"
        assert [(p.name, p.target) for p in plugins] == [
            ("cluster", Target.KUBERNETES),
            ("cluster", Target.MISSION_CONTROL),
            ("secret", Target.GLOBAL),
        ]
        cluster = plugins[0]
        assert cluster.supported_versions == ["v1.0.0", "v1.1.0"]
        assert cluster.recommended_version == "v1.1.0"
        assert cluster.source == "default"
        assert cluster.discovery_type == "oci"
        assert cluster.distribution["v1.1.0"][0].image.startswith("registry.example.com/plugins/vmware/")

    def test_pulls_once_per_instance(self, fake_fetcher):
        discovery = self._discovery(fake_fetcher)
        discovery.list_plugins()
        discovery.list_groups()
        assert len(fake_fetcher.pulled) == 1

    def test_include_hidden(self, fake_fetcher):
        plugins = self._discovery(fake_fetcher, include_hidden=True).list_plugins()
        assert "hidden-tool" in {p.name for p in plugins}

    def test_latest_keeps_recommended_only(self, fake_fetcher):
        plugins = self._discovery(fake_fetcher).list_plugins(
            PluginDiscoveryCriteria(name="cluster", target=Target.KUBERNETES, version="latest")
        )
        [cluster] = plugins
        assert cluster.supported_versions == ["v1.1.0"]
        assert list(cluster.distribution) == ["v1.1.0"]

    def test_describe(self, fake_fetcher):
        assert self._discovery(fake_fetcher).describe("secret").target is Target.GLOBAL

    def test_describe_missing(self, fake_fetcher):
        with pytest.raises(PluginNotFoundError, match="nothing"):
            self._discovery(fake_fetcher).describe("nothing")

    def test_list_groups(self, fake_fetcher):
        [group] = self._discovery(fake_fetcher).list_groups()
        assert group.group_id == "vmware-tkg/default"
        assert group.recommended_version == "v2.0.0"
        assert set(group.versions) == {"v1.0.0", "v2.0.0"}

    def test_list_groups_latest(self, fake_fetcher):
        [group] = self._discovery(fake_fetcher).list_groups(
            GroupDiscoveryCriteria(vendor="vmware", publisher="tkg", name="default", version="latest")
        )
        assert list(group.versions) == ["v2.0.0"]

    def test_cache_only_skips_pull(self, fake_fetcher, cache_dir: Path, published_inventory: Path, monkeypatch):
        import shutil

        shutil.copytree(published_inventory, cache_dir / "plugin_inventory" / "default")
        monkeypatch.setenv("PLUGINCTL_USE_CACHE_ONLY", "true")

        plugins = self._discovery(fake_fetcher).list_plugins()
        assert fake_fetcher.pulled == []
        assert len(plugins) == 3

    def test_cache_only_without_cache(self, fake_fetcher):
        with pytest.raises(DiscoveryError, match="not found"):
            self._discovery(fake_fetcher, use_local_cache_only=True).list_plugins()

    def test_failed_pull_keeps_previous_inventory(self, fake_fetcher):
        discovery = self._discovery(fake_fetcher)
        discovery.list_plugins()

        def broken(image: str, dest_dir: Path) -> None:
            raise RuntimeError("registry unreachable")

        retry = self._discovery(broken)
        with pytest.raises(DiscoveryError, match="registry unreachable"):
            retry.refresh()
        assert discovery.db_file.is_file()


class TestTargetSpellings:
    """Inventories may spell targets as aliases, in any case, or leave them empty."""

    @pytest.fixture
    def aliased_inventory(self, tmp_path: Path) -> Path:
        image_dir = tmp_path / "aliased"
        db = InventoryDB(image_dir / "plugin_inventory.db")
        db.create_schema()
        for row in (
            make_row("cluster", target="k8s", version="v1.0.0"),
            make_row("cluster", target="k8s", version="v2.0.0"),
            make_row("cluster", target="kubernetes", version="v1.0.0", os="darwin"),
            make_row("cluster", target="TMC", version="v0.5.0"),
            make_row("tool", target="", version="v0.1.0"),
            make_row("tool", target="global", version="v0.2.0"),
            make_row("widget", target="some-future-target", version="v1.0.0"),
        ):
            db.insert_plugin_row(row)
        return image_dir

    @pytest.fixture
    def discovery(self, aliased_inventory: Path) -> CentralInventoryDiscovery:
        def fetch(image: str, dest_dir: Path) -> None:
            shutil.copytree(aliased_inventory, dest_dir, dirs_exist_ok=True)

        return CentralInventoryDiscovery("default", INVENTORY_IMAGE, fetcher=fetch)

    def test_aliases_stay_adjacent(self, aliased_inventory: Path):
        db = InventoryDB(aliased_inventory / "plugin_inventory.db")
        targets = [r.target for r in db.iter_plugin_rows(PluginDiscoveryCriteria(name="cluster"))]
        assert sorted(targets[:3]) == ["k8s", "k8s", "kubernetes"]
        assert targets[3] == "TMC"

    def test_unfiltered(self, discovery: CentralInventoryDiscovery):
        plugins = discovery.list_plugins()
        assert [(p.name, p.target) for p in plugins] == [
            ("cluster", Target.KUBERNETES),
            ("cluster", Target.MISSION_CONTROL),
            ("tool", Target.GLOBAL),
            ("widget", Target.GLOBAL),
        ]
        assert plugins[0].supported_versions == ["v1.0.0", "v2.0.0"]
        assert len(plugins[0].distribution["v1.0.0"]) == 2
        assert plugins[2].supported_versions == ["v0.1.0", "v0.2.0"]

    @pytest.mark.parametrize("name,target", [
        ("cluster", Target.KUBERNETES),
        ("cluster", Target.MISSION_CONTROL),
        ("tool", Target.GLOBAL),
        ("widget", Target.GLOBAL),
    ])
    def test_filter_by_target(self, discovery: CentralInventoryDiscovery, name: str, target: Target):
        [plugin] = discovery.list_plugins(PluginDiscoveryCriteria(name=name, target=target))
        assert (plugin.name, plugin.target) == (name, target)

    def test_filter_excludes_other_targets(self, discovery: CentralInventoryDiscovery):
        assert discovery.list_plugins(PluginDiscoveryCriteria(name="tool", target=Target.KUBERNETES)) == []

    def test_install_from_aliased_rows(self, discovery: CentralInventoryDiscovery, fake_binary_fetcher):
        from pluginctl.core.services.plugin_ops import install_plugin

        installed = install_plugin("cluster", target=Target.KUBERNETES, discoveries=[discovery],
                                   fetcher=fake_binary_fetcher, os_name="linux", arch="amd64")
        assert (installed.name, installed.version) == ("cluster", "v2.0.0")
        assert installed.target is Target.KUBERNETES
