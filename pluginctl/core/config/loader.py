"""
Configuration loader — reads config.yaml into the CLIConfig model.

The file lives in the config directory (``PLUGINCTL_CONFIG_DIR``) and
lists the discovery sources plus the active context.  It is optional:
without it the CLI uses the default central repository.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from pluginctl.core.config import paths
from pluginctl.core.persistence.file_lock import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_NAME = "default"
DEFAULT_CENTRAL_REPO_IMAGE = "projects.packages.example.com/plugins/plugin-inventory:latest"


class ConfigError(Exception):
    """Raised when the CLI configuration is invalid or unreadable."""


class DiscoverySource(BaseModel):
    """An OCI-image-backed plugin inventory."""

    name: str
    image: str


def _default_sources() -> list[DiscoverySource]:
    return [DiscoverySource(name=DEFAULT_DISCOVERY_NAME, image=DEFAULT_CENTRAL_REPO_IMAGE)]


class CLIConfig(BaseModel):
    """Root of config.yaml."""

    discovery_sources: list[DiscoverySource] = Field(default_factory=_default_sources)
    current_context: str = ""
    include_hidden_plugins: bool = False

    def get_source(self, name: str) -> DiscoverySource | None:
        for source in self.discovery_sources:
            if source.name == name:
                return source
        return None


def load_config(path: Path | None = None) -> CLIConfig:
    """Load and validate config.yaml.

    Args:
        path: Explicit path.  Defaults to ``paths.config_file()``.

    Returns:
        The validated config, or the default config if the file is absent.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    path = path or paths.config_file()
    if not path.is_file():
        logger.debug("No config file at %s, using defaults", path)
        return CLIConfig()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return CLIConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = CLIConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.debug("Loaded config from %s with %d discovery sources", path, len(config.discovery_sources))
    return config


def save_config(config: CLIConfig, path: Path | None = None) -> None:
    """Write config.yaml atomically."""
    path = path or paths.config_file()
    content = yaml.safe_dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False)
    try:
        atomic_write_text(path, content, prefix=".config_")
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e
    logger.debug("Config saved to %s", path)
