"""
Central configuration reader.

The central configuration is an optional YAML document shipped inside
a discovery source's inventory image and cached next to its database:

    <cache dir>/plugin_inventory/<discovery name>/central_config.yaml

It is produced externally and read-only from the CLI's point of view.
Some repositories do not publish one, so a missing file behaves like an
empty document.

Values are extracted through typed accessors.  A missing key raises
CentralConfigEntryNotFoundError; a key whose value has another type
raises CentralConfigTypeError, so callers can tell "optional and
absent" apart from "malformed".
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import yaml

from pluginctl.core.config import paths

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CentralConfigError(Exception):
    """Raised when the central configuration cannot be read."""


class CentralConfigEntryNotFoundError(CentralConfigError):
    """Raised when a key is not present in the central configuration."""

    def __init__(self, key: str):
        super().__init__(f"key {key!r} not found in central config")
        self.key = key


class CentralConfigTypeError(CentralConfigError):
    """Raised when a key holds a value of an unexpected type."""

    def __init__(self, key: str, value: Any, expected: str):
        super().__init__(
            f"central config key {key!r}: {value!r} is of the type "
            f"{type(value).__name__}, expected {expected}"
        )
        self.key = key
        self.value = value
        self.expected = expected


class CentralConfigReader:
    """Typed access to one central configuration file.

    The file is re-read on every lookup; it is small and may be
    refreshed by a concurrent discovery.
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file

    def _load(self) -> dict[str, Any]:
        if not self.config_file.is_file():
            return {}
        try:
            raw = self.config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise CentralConfigError(f"cannot read {self.config_file}: {e}") from e
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise CentralConfigError(f"invalid YAML in {self.config_file}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise CentralConfigError(
                f"expected a YAML mapping in {self.config_file}, got {type(data).__name__}"
            )
        return data

    def _lookup(self, key: str) -> Any:
        values = self._load()
        if key not in values:
            raise CentralConfigEntryNotFoundError(key)
        return values[key]

    # ── Untyped access ──────────────────────────────────────────

    def get_entry(self, key: str) -> Any:
        """Raw value of ``key``, or None if the key (or the file) is missing."""
        return self._load().get(key)

    def get_generic(self, key: str) -> Any:
        """Raw value of ``key``, whatever its type."""
        return self._lookup(key)

    # ── Typed accessors ─────────────────────────────────────────

    def get_string(self, key: str) -> str:
        value = self._lookup(key)
        if not isinstance(value, str):
            raise CentralConfigTypeError(key, value, "str")
        return value

    def get_bool(self, key: str) -> bool:
        value = self._lookup(key)
        if not isinstance(value, bool):
            raise CentralConfigTypeError(key, value, "bool")
        return value

    def get_int(self, key: str) -> int:
        value = self._lookup(key)
        # bool is a subclass of int
        if isinstance(value, bool) or not isinstance(value, int):
            raise CentralConfigTypeError(key, value, "int")
        return value

    def get_float(self, key: str) -> float:
        value = self._lookup(key)
        if not isinstance(value, float):
            raise CentralConfigTypeError(key, value, "float")
        return value

    def get_timestamp(self, key: str) -> datetime:
        value = self._lookup(key)
        if not isinstance(value, datetime):
            raise CentralConfigTypeError(key, value, "timestamp")
        return value

    def get_string_list(self, key: str) -> list[str]:
        value = self._lookup(key)
        if not isinstance(value, list):
            raise CentralConfigTypeError(key, value, "list[str]")
        for item in value:
            if not isinstance(item, str):
                raise CentralConfigTypeError(key, value, "list[str]")
        return list(value)

    def get_list(self, key: str) -> list[Any]:
        value = self._lookup(key)
        if not isinstance(value, list):
            raise CentralConfigTypeError(key, value, "list")
        return value

    def get_decoded(self, key: str, decoder: Callable[[Any], T]) -> T:
        """Decode a structured value, e.g. ``get_decoded(k, Model.model_validate)``.

        The value goes through a YAML dump/load round-trip first so the
        decoder never shares state with the parsed document.  Decoder
        failures are reported as CentralConfigTypeError.
        """
        value = self._lookup(key)
        try:
            plain = yaml.safe_load(yaml.safe_dump(value))
        except yaml.YAMLError as e:
            raise CentralConfigError(f"cannot re-encode central config key {key!r}: {e}") from e
        try:
            return decoder(plain)
        except (TypeError, ValueError) as e:
            raise CentralConfigTypeError(key, value, getattr(decoder, "__qualname__", "decoded value")) from e


def new_central_config_reader(discovery_name: str) -> CentralConfigReader:
    """Reader for the central configuration of one discovery source."""
    return CentralConfigReader(paths.inventory_dir(discovery_name) / paths.CENTRAL_CONFIG_FILE_NAME)
