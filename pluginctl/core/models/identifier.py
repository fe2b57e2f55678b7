"""
Plugin and plugin-group identifiers.

The canonical string form is ``vendor-publisher/name[:version]``.  The
vendor is everything before the FIRST hyphen; the publisher may itself
contain hyphens.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

VERSION_LATEST = "latest"


class InvalidIdentifierError(ValueError):
    """Raised when an identifier string cannot be parsed."""


@dataclass(frozen=True)
class PluginIdentifier:
    """Uniquely addresses a plugin or plugin-group."""

    vendor: str
    publisher: str
    name: str
    version: str = ""

    @property
    def id(self) -> str:
        """The ``vendor-publisher/name`` part, without version."""
        return f"{self.vendor}-{self.publisher}/{self.name}"

    def format(self) -> str:
        if self.version:
            return f"{self.id}:{self.version}"
        return self.id

    def __str__(self) -> str:
        return self.format()

    def with_default_version(self) -> PluginIdentifier:
        """Return a copy whose empty version is replaced by ``latest``."""
        if self.version:
            return self
        return replace(self, version=VERSION_LATEST)

    @classmethod
    def parse(cls, text: str | None) -> PluginIdentifier | None:
        """Parse ``vendor-publisher/name[:version]``.

        Returns None for empty or malformed input; callers must check.
        """
        if not text:
            return None

        name_part, sep, version = text.partition(":")
        if sep and (not version or ":" in version):
            return None

        vendor_publisher, slash, name = name_part.partition("/")
        if not slash or not name or "/" in name:
            return None

        vendor, hyphen, publisher = vendor_publisher.partition("-")
        if not hyphen or not vendor or not publisher:
            return None

        return cls(vendor=vendor, publisher=publisher, name=name, version=version)

    @classmethod
    def parse_or_raise(cls, text: str | None) -> PluginIdentifier:
        """Parse an identifier used as a primary key.

        Raises:
            InvalidIdentifierError: Naming the bad input.
        """
        identifier = cls.parse(text)
        if identifier is None:
            raise InvalidIdentifierError(
                f"incorrect plugin-group {text!r} specified, "
                "expected vendor-publisher/name[:version]"
            )
        return identifier
