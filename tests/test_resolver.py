"""
Tests for discovery resolution — rows to plugin and group records.
"""

import pytest

from conftest import make_group_row, make_row
from pluginctl.core.inventory.resolver import (
    _drain,
    image_prefix_of,
    resolve_group_rows,
    resolve_plugin_rows,
)
from pluginctl.core.models import Target

PREFIX = "registry.example.com/plugins"


class TestImagePrefix:
    def test_strips_last_segment(self):
        assert image_prefix_of("registry.example.com/plugins/plugin-inventory:latest") == PREFIX

    def test_bare_image(self):
        assert image_prefix_of("plugin-inventory:latest") == ""


class TestResolvePluginRows:
    def test_empty_stream(self):
        assert resolve_plugin_rows([], PREFIX) == []

    def test_one_plugin_two_versions_two_platforms(self):
        rows = [
            make_row("cluster", version="v1.0.0", os="darwin"),
            make_row("cluster", version="v1.0.0", os="linux"),
            make_row("cluster", version="v1.1.0", os="darwin"),
            make_row("cluster", version="v1.1.0", os="linux"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX, source="default")

        assert plugin.name == "cluster"
        assert plugin.target is Target.KUBERNETES
        assert plugin.supported_versions == ["v1.0.0", "v1.1.0"]
        assert plugin.recommended_version == "v1.1.0"
        assert plugin.source == "default"
        assert [a.os for a in plugin.distribution["v1.1.0"]] == ["darwin", "linux"]
        assert plugin.distribution["v1.0.0"][1].image == (
            f"{PREFIX}/vmware/tkg/linux/amd64/kubernetes/cluster:v1.0.0"
        )

    def test_plugin_boundary_on_target_change(self):
        rows = [
            make_row("cluster", target="kubernetes", version="v1.0.0"),
            make_row("cluster", target="mission-control", version="v1.0.0"),
            make_row("login", target="global", version="v0.1.0"),
        ]
        plugins = resolve_plugin_rows(rows, PREFIX)
        assert [(p.name, p.target) for p in plugins] == [
            ("cluster", Target.KUBERNETES),
            ("cluster", Target.MISSION_CONTROL),
            ("login", Target.GLOBAL),
        ]
        for p in plugins:
            assert len(p.supported_versions) == 1
            assert len(p.distribution[p.supported_versions[0]]) == 1

    def test_aliased_targets_merge_into_one_plugin(self):
        rows = [
            make_row("cluster", target="k8s", version="v1.0.0"),
            make_row("cluster", target="k8s", version="v2.0.0"),
            make_row("cluster", target="kubernetes", version="v1.0.0", os="darwin"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX)
        assert plugin.target is Target.KUBERNETES
        assert plugin.supported_versions == ["v1.0.0", "v2.0.0"]
        assert [a.os for a in plugin.distribution["v1.0.0"]] == ["linux", "darwin"]
        assert [a.os for a in plugin.distribution["v2.0.0"]] == ["linux"]

    def test_recommended_defaults_to_highest_when_undeclared(self):
        rows = [
            make_row("cluster", target="k8s", version="v1.0.0"),
            make_row("cluster", target="k8s", version="v2.0.0"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX)
        assert plugin.target is Target.KUBERNETES
        assert plugin.supported_versions == ["v1.0.0", "v2.0.0"]
        assert plugin.recommended_version == "v2.0.0"

    def test_declared_recommended_version_wins(self):
        rows = [
            make_row("cluster", version="v1.0.0", recommended_version="v1.0.0"),
            make_row("cluster", version="v1.1.0", recommended_version="v1.0.0"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX)
        assert plugin.recommended_version == "v1.0.0"

    def test_recommended_from_any_row(self):
        rows = [
            make_row("cluster", version="v1.0.0"),
            make_row("cluster", version="v1.1.0", recommended_version="v1.0.0"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX)
        assert plugin.recommended_version == "v1.0.0"

    def test_versions_sorted_semantically(self):
        # SQL ordering is lexical: v1.10.0 comes before v1.9.0
        rows = [
            make_row("cluster", version="v1.10.0"),
            make_row("cluster", version="v1.9.0"),
        ]
        [plugin] = resolve_plugin_rows(rows, PREFIX)
        assert plugin.supported_versions == ["v1.9.0", "v1.10.0"]
        assert plugin.recommended_version == "v1.10.0"

    def test_every_version_has_artifacts(self):
        rows = [make_row("a", version=v, os=o) for v in ("v1.0.0", "v2.0.0") for o in ("darwin", "linux")]
        rows += [make_row("b", version="v0.1.0")]
        for plugin in resolve_plugin_rows(rows, PREFIX):
            assert set(plugin.distribution) == set(plugin.supported_versions)
            assert all(plugin.distribution[v] for v in plugin.supported_versions)

    def test_unknown_target_degrades_to_global(self):
        [plugin] = resolve_plugin_rows([make_row("odd", target="mainframe")], PREFIX)
        assert plugin.target is Target.GLOBAL

    def test_hidden_flag(self):
        [plugin] = resolve_plugin_rows([make_row("x", hidden="TRUE")], PREFIX)
        assert plugin.hidden is True

    def test_stream_error_aborts_and_closes_source(self):
        closed = []

        def rows():
            try:
                yield make_row("cluster", version="v1.0.0")
                raise RuntimeError("disk I/O error")
            finally:
                closed.append(True)

        with pytest.raises(RuntimeError, match="disk I/O error"):
            resolve_plugin_rows(rows(), PREFIX)
        assert closed == [True]

    def test_consumer_error_closes_source(self):
        closed = []

        def rows():
            try:
                yield make_row("cluster", version="v1.0.0")
                yield make_row("cluster", version="v1.1.0")
            finally:
                closed.append(True)

        def feed(row):
            raise ValueError("boom")

        with pytest.raises(ValueError):
            _drain(rows(), feed)
        assert closed == [True]


class TestResolveGroupRows:
    def test_groups_and_versions(self):
        rows = [
            make_group_row("cluster", group_version="v1.0.0", plugin_version="v1.0.0"),
            make_group_row("secret", group_version="v1.0.0", target="global", mandatory="false"),
            make_group_row("cluster", group_version="v2.0.0", plugin_version="v1.1.0"),
            make_group_row("login", group_name="tmc", target="global"),
        ]
        groups = resolve_group_rows(rows)
        assert [g.group_id for g in groups] == ["vmware-tkg/default", "vmware-tkg/tmc"]

        default = groups[0]
        assert default.recommended_version == "v2.0.0"
        assert [e.name for e in default.versions["v1.0.0"]] == ["cluster", "secret"]
        assert default.versions["v1.0.0"][1].mandatory is False
        assert default.versions["v1.0.0"][1].target is Target.GLOBAL
        assert all(entries for entries in default.versions.values())

    def test_empty(self):
        assert resolve_group_rows([]) == []
