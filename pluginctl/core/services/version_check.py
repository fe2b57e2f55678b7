"""
Recommended CLI version check.

The default discovery source can publish, in its central configuration,
the list of CLI versions it recommends:

    cli.core.cli_recommended_versions: "v1.2.1, v1.1.0, v0.90.1"

When the running CLI is not on the best recommended version for its
major, minor and patch line, a notice is printed.  Once printed, the
notice is silenced for a delay (one day by default) recorded in the
data store under ``lastVersionCheck``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

from pluginctl.core.config.central_config import (
    CentralConfigError,
    CentralConfigReader,
    new_central_config_reader,
)
from pluginctl.core.config.loader import DEFAULT_DISCOVERY_NAME
from pluginctl.core.persistence.data_store import DataStore, DataStoreError
from pluginctl.core.versions import (
    is_new_version,
    is_pre_release,
    is_same_major,
    is_same_minor,
    sort_versions,
)

logger = logging.getLogger(__name__)

RECOMMENDED_VERSIONS_KEY = "cli.core.cli_recommended_versions"
LAST_VERSION_CHECK_KEY = "lastVersionCheck"
DELAY_ENV_VAR = "PLUGINCTL_VERSION_CHECK_DELAY_DAYS"
DEFAULT_DELAY_SECONDS = 24 * 60 * 60


@dataclass
class Recommendation:
    current: str
    major: str = ""
    minor: str = ""
    patch: str = ""

    def __bool__(self) -> bool:
        return bool(self.major or self.minor or self.patch)

    @property
    def is_downgrade(self) -> bool:
        """True when the running version is newer than a recommendation."""
        return any(is_new_version(self.current, v) for v in (self.major, self.minor, self.patch) if v)


def sort_recommended_versions(value: str) -> list[str]:
    """Parse the comma-separated list into versions, newest first.

    Raises:
        ValueError: If an entry is not a semantic version.
    """
    versions: list[str] = []
    for item in value.split(","):
        item = item.strip()
        if item and item not in versions:
            versions.append(item)
    sort_versions(versions)
    versions.reverse()
    return versions


def _candidates(versions: list[str], include_pre_releases: bool) -> list[str]:
    if include_pre_releases:
        return versions
    return [v for v in versions if not is_pre_release(v)]


def find_recommended_major(versions: list[str], current: str, include_pre_releases: bool = False) -> str:
    """The newest recommended version, unless it shares ``current``'s major."""
    for version in _candidates(versions, include_pre_releases):
        return "" if is_same_major(version, current) else version
    return ""


def find_recommended_minor(versions: list[str], current: str, include_pre_releases: bool = False) -> str:
    """The newest recommendation in ``current``'s major, unless on the same minor."""
    for version in _candidates(versions, include_pre_releases):
        if is_same_major(version, current):
            return "" if is_same_minor(version, current) else version
    return ""


def find_recommended_patch(versions: list[str], current: str, include_pre_releases: bool = False) -> str:
    """The newest recommendation in ``current``'s minor, unless it is ``current``."""
    for version in _candidates(versions, include_pre_releases):
        if is_same_minor(version, current):
            return "" if version == current else version
    return ""


def recommend(versions: list[str], current: str) -> Recommendation:
    include_pre = is_pre_release(current)
    return Recommendation(
        current=current,
        major=find_recommended_major(versions, current, include_pre),
        minor=find_recommended_minor(versions, current, include_pre),
        patch=find_recommended_patch(versions, current, include_pre),
    )


def check_delay_seconds() -> int:
    """Delay between two notices.

    ``PLUGINCTL_VERSION_CHECK_DELAY_DAYS`` is a number of days; 0
    disables the check and a negative value is taken as seconds.
    """
    raw = os.environ.get(DELAY_ENV_VAR, "").strip()
    if not raw:
        return DEFAULT_DELAY_SECONDS
    try:
        value = int(raw)
    except ValueError:
        logger.debug("Ignoring invalid %s=%r", DELAY_ENV_VAR, raw)
        return DEFAULT_DELAY_SECONDS
    if value >= 0:
        return value * 24 * 60 * 60
    return -value


def should_check(store: DataStore, now: datetime | None = None) -> bool:
    delay = check_delay_seconds()
    if delay == 0:
        return False
    try:
        last_check, found = store.get(LAST_VERSION_CHECK_KEY)
    except DataStoreError as e:
        logger.debug("Cannot read last version check: %s", e)
        return True
    if not found or not isinstance(last_check, datetime):
        return True

    now = now or datetime.now(timezone.utc)
    if last_check.tzinfo is None:
        last_check = last_check.replace(tzinfo=timezone.utc)
    return (now - last_check).total_seconds() > delay


def format_recommendation(rec: Recommendation) -> str:
    lines = ["", "=="]
    if rec.is_downgrade:
        lines.append(f"WARNING: Due to a problem it is recommended not to use the current version: {rec.current}.")
        lines.append("Please use a recommended version:")
    else:
        lines.append(f"Note: A new version of the CLI is available. You are at version: {rec.current}.")
        lines.append("To benefit from the latest security and features, please update to a recommended version:")

    for level, version in (("major", rec.major), ("minor", rec.minor), ("patch", rec.patch)):
        if not version:
            continue
        if is_new_version(version, rec.current):
            lines.append(f"  - {version}")
        else:
            lines.append(f"  - {version} ([!] you should downgrade to a previous {level} version)")

    delay = check_delay_seconds()
    period = f"{delay // 3600} hours" if delay >= 3600 else f"{delay} seconds"
    lines.append("")
    lines.append(f"This message will print at most once per {period} until you update the CLI.")
    lines.append(f"Set {DELAY_ENV_VAR} to adjust this period (0 to disable).")
    return "\n".join(lines) + "\n"


def check_recommended_version(
    current: str,
    out: TextIO,
    reader: CentralConfigReader | None = None,
    store: DataStore | None = None,
) -> Recommendation | None:
    """Print a notice if ``current`` is not a recommended CLI version.

    Never raises for missing or malformed data; the check is advisory.
    Returns the recommendation that was printed, if any.
    """
    store = store or DataStore()
    if not should_check(store):
        return None

    reader = reader or new_central_config_reader(DEFAULT_DISCOVERY_NAME)
    try:
        value = reader.get_entry(RECOMMENDED_VERSIONS_KEY)
    except CentralConfigError as e:
        logger.debug("Cannot read recommended versions: %s", e)
        return None
    if value is None:
        return None
    if not isinstance(value, str):
        logger.debug("Wrong format for %s in central config: %r", RECOMMENDED_VERSIONS_KEY, value)
        return None

    try:
        versions = sort_recommended_versions(value)
    except ValueError as e:
        logger.debug("Failed to sort recommended versions: %s", e)
        return None

    rec = recommend(versions, current)
    if not rec:
        return None

    out.write(format_recommendation(rec))
    try:
        store.set(LAST_VERSION_CHECK_KEY, datetime.now(timezone.utc))
    except DataStoreError as e:
        logger.warning("Cannot record last version check: %s", e)
    return rec
