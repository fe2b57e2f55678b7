"""pluginctl — discover, install, list and sync plugins for a host CLI."""

__version__ = "0.1.0"
