"""
Well-known locations on disk.

Every directory can be overridden by an environment variable, which is
also how the test-suite isolates itself from the real home directory:

    PLUGINCTL_CONFIG_DIR       ~/.config/pluginctl
    PLUGINCTL_CACHE_DIR        ~/.cache/pluginctl
    PLUGINCTL_PLUGIN_ROOT      ~/.local/share/pluginctl/plugins
    PLUGINCTL_DATA_STORE_FILE  <config dir>/.data-store.yaml

Paths are resolved on every call (not at import time) so that overrides
set after import still apply.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILE_NAME = "config.yaml"
CATALOG_FILE_NAME = "catalog.yaml"
DATA_STORE_FILE_NAME = ".data-store.yaml"
CENTRAL_CONFIG_FILE_NAME = "central_config.yaml"
INVENTORY_DB_FILE_NAME = "plugin_inventory.db"
INVENTORY_DIR_NAME = "plugin_inventory"


def _env_path(var: str, default: Path) -> Path:
    value = os.environ.get(var, "").strip()
    return Path(value).expanduser() if value else default


def config_dir() -> Path:
    return _env_path("PLUGINCTL_CONFIG_DIR", Path.home() / ".config" / "pluginctl")


def cache_dir() -> Path:
    return _env_path("PLUGINCTL_CACHE_DIR", Path.home() / ".cache" / "pluginctl")


def plugin_root() -> Path:
    """Directory under which plugin binaries are installed."""
    return _env_path(
        "PLUGINCTL_PLUGIN_ROOT",
        Path.home() / ".local" / "share" / "pluginctl" / "plugins",
    )


def config_file() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def catalog_file() -> Path:
    return cache_dir() / CATALOG_FILE_NAME


def data_store_file() -> Path:
    """Hidden YAML file holding CLI state that is not configuration."""
    return _env_path("PLUGINCTL_DATA_STORE_FILE", config_dir() / DATA_STORE_FILE_NAME)


def inventory_dir(discovery_name: str) -> Path:
    """Cache directory of one discovery source's inventory image."""
    return cache_dir() / INVENTORY_DIR_NAME / discovery_name
