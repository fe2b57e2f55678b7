"""
Target model — the product category a plugin operates against.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Target(str, Enum):
    """Plugin target.

    GLOBAL is the unspecified/default target: plugins that are not tied
    to a Kubernetes cluster or to Mission Control.
    """

    KUBERNETES = "kubernetes"
    MISSION_CONTROL = "mission-control"
    GLOBAL = "global"

    @classmethod
    def from_string(cls, value: str | None) -> Target:
        """Convert free text to a Target.

        Matching is case-insensitive and accepts the short aliases
        ``k8s`` and ``tmc``.  Unknown values degrade to GLOBAL so that a
        single bad inventory row never aborts a whole discovery.
        """
        text = (value or "").strip().lower()
        if text in ("", "global"):
            return cls.GLOBAL
        if text in ("k8s", "kubernetes"):
            return cls.KUBERNETES
        if text in ("tmc", "mission-control"):
            return cls.MISSION_CONTROL
        logger.debug("Unknown target %r, using %s", value, cls.GLOBAL.value)
        return cls.GLOBAL

    def __str__(self) -> str:
        return self.value


TARGET_LIST = "kubernetes[k8s]/mission-control[tmc]/global"


def plugin_name_target(name: str, target: Target | str | None = None) -> str:
    """Build the key that uniquely refers to a plugin for a given target.

    Global plugins are keyed by name alone; others get ``<name>_<target>``.
    """
    tgt = target if isinstance(target, Target) else Target.from_string(target)
    if tgt is Target.GLOBAL:
        return name
    return f"{name}_{tgt.value}"
