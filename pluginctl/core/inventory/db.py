"""
SQLite inventory database — the row source behind central discovery.

The central repository publishes a single SQLite file inside an OCI
image.  This module only reads and writes rows; turning rows into
plugin records is the resolver's job.

Rows are yielded lazily.  The cursor and connection are closed when the
generator finishes, fails, or is closed by the consumer.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pluginctl.core.inventory.types import (
    GroupDiscoveryCriteria,
    PluginDiscoveryCriteria,
    PluginGroupRow,
    PluginInventoryRow,
)
from pluginctl.core.models.identifier import VERSION_LATEST

logger = logging.getLogger(__name__)

# SQL mirror of Target.from_string
_NORMALISED_TARGET = (
    "CASE lower(trim(Target))"
    " WHEN 'k8s' THEN 'kubernetes'"
    " WHEN 'kubernetes' THEN 'kubernetes'"
    " WHEN 'tmc' THEN 'mission-control'"
    " WHEN 'mission-control' THEN 'mission-control'"
    " ELSE 'global' END"
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS "PluginBinaries" (
    "PluginName"         TEXT NOT NULL,
    "Target"             TEXT NOT NULL,
    "RecommendedVersion" TEXT NOT NULL,
    "Version"            TEXT NOT NULL,
    "Hidden"             TEXT NOT NULL,
    "Description"        TEXT NOT NULL,
    "Publisher"          TEXT NOT NULL,
    "Vendor"             TEXT NOT NULL,
    "OS"                 TEXT NOT NULL,
    "Architecture"       TEXT NOT NULL,
    "Digest"             TEXT NOT NULL,
    "URI"                TEXT NOT NULL,
    PRIMARY KEY("PluginName", "Target", "Version", "OS", "Architecture")
);
CREATE TABLE IF NOT EXISTS "PluginGroups" (
    "Vendor"        TEXT NOT NULL,
    "Publisher"     TEXT NOT NULL,
    "GroupName"     TEXT NOT NULL,
    "GroupVersion"  TEXT NOT NULL,
    "Description"   TEXT NOT NULL,
    "PluginName"    TEXT NOT NULL,
    "Target"        TEXT NOT NULL,
    "PluginVersion" TEXT NOT NULL,
    "Mandatory"     TEXT NOT NULL,
    "Hidden"        TEXT NOT NULL,
    PRIMARY KEY("Vendor", "Publisher", "GroupName", "GroupVersion", "PluginName", "Target")
);
"""

_PLUGIN_COLUMNS = (
    "PluginName, Target, RecommendedVersion, Version, Hidden, Description, "
    "Publisher, Vendor, OS, Architecture, Digest, URI"
)
_GROUP_COLUMNS = (
    "Vendor, Publisher, GroupName, GroupVersion, Description, "
    "PluginName, Target, PluginVersion, Mandatory, Hidden"
)


class InventoryError(Exception):
    """Raised when the inventory database cannot be opened or queried."""


class InventoryDB:
    """Access to one inventory database file."""

    def __init__(self, db_file: Path):
        self.db_file = db_file

    def _connect(self, must_exist: bool = True) -> sqlite3.Connection:
        if must_exist and not self.db_file.is_file():
            raise InventoryError(f"plugin inventory database not found: {self.db_file}")
        try:
            return sqlite3.connect(self.db_file)
        except sqlite3.Error as e:
            raise InventoryError(f"failed to open the DB from {self.db_file!s}: {e}") from e

    # ── Writes (used when publishing and in tests) ──────────────

    def create_schema(self) -> None:
        self.db_file.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect(must_exist=False)
        try:
            with conn:
                conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise InventoryError(f"unable to create inventory schema in {self.db_file}: {e}") from e
        finally:
            conn.close()

    def insert_plugin_row(self, row: PluginInventoryRow) -> None:
        self._insert(
            f'INSERT INTO "PluginBinaries" ({_PLUGIN_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)',
            (
                row.name, row.target, row.recommended_version, row.version, row.hidden,
                row.description, row.publisher, row.vendor, row.os, row.arch, row.digest, row.uri,
            ),
            what=f"plugin row {row.name}/{row.target}/{row.version}",
        )

    def insert_group_row(self, row: PluginGroupRow) -> None:
        self._insert(
            f'INSERT INTO "PluginGroups" ({_GROUP_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?)',
            (
                row.vendor, row.publisher, row.group_name, row.group_version, row.description,
                row.plugin_name, row.target, row.plugin_version, row.mandatory, row.hidden,
            ),
            what=f"group row {row.vendor}-{row.publisher}/{row.group_name}:{row.group_version}",
        )

    def _insert(self, sql: str, params: tuple[Any, ...], what: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            raise InventoryError(f"unable to insert {what} into {self.db_file}: {e}") from e
        finally:
            conn.close()

    # ── Reads ───────────────────────────────────────────────────

    def iter_plugin_rows(
        self,
        criteria: PluginDiscoveryCriteria | None = None,
        include_hidden: bool = False,
    ) -> Iterator[PluginInventoryRow]:
        """Yield plugin rows ordered by PluginName, normalised Target, Version.

        ``criteria.target`` is not applied here.
        """
        where: list[str] = []
        params: list[str] = []
        if criteria is not None:
            if criteria.name:
                where.append("PluginName = ?")
                params.append(criteria.name)
            if criteria.version and criteria.version != VERSION_LATEST:
                where.append("Version = ?")
                params.append(criteria.version)
            if criteria.os:
                where.append("OS = ?")
                params.append(criteria.os)
            if criteria.arch:
                where.append("Architecture = ?")
                params.append(criteria.arch)
        if not include_hidden:
            where.append("lower(Hidden) != 'true'")

        sql = f'SELECT {_PLUGIN_COLUMNS} FROM "PluginBinaries"'
        if where:
            sql += " WHERE " + " AND ".join(where)
        # Target aliases must stay adjacent for the resolver; filtering by
        # target happens after resolution.
        sql += f" ORDER BY PluginName, {_NORMALISED_TARGET}, Version"

        for values in self._query(sql, params):
            yield PluginInventoryRow(*values)

    def iter_group_rows(
        self,
        criteria: GroupDiscoveryCriteria | None = None,
        include_hidden: bool = False,
    ) -> Iterator[PluginGroupRow]:
        """Yield group rows ordered by Vendor, Publisher, GroupName, GroupVersion."""
        where: list[str] = []
        params: list[str] = []
        if criteria is not None:
            for column, value in (
                ("Vendor", criteria.vendor),
                ("Publisher", criteria.publisher),
                ("GroupName", criteria.name),
            ):
                if value:
                    where.append(f"{column} = ?")
                    params.append(value)
            if criteria.version and criteria.version != VERSION_LATEST:
                where.append("GroupVersion = ?")
                params.append(criteria.version)
        if not include_hidden:
            where.append("lower(Hidden) != 'true'")

        sql = f'SELECT {_GROUP_COLUMNS} FROM "PluginGroups"'
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY Vendor, Publisher, GroupName, GroupVersion, PluginName, Target"

        for values in self._query(sql, params):
            yield PluginGroupRow(*values)

    def _query(self, sql: str, params: list[str]) -> Iterator[tuple[Any, ...]]:
        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            try:
                for values in cursor:
                    yield tuple("" if v is None else str(v) for v in values)
            finally:
                cursor.close()
        except sqlite3.Error as e:
            raise InventoryError(f"failed to query the inventory DB {self.db_file}: {e}") from e
        finally:
            conn.close()
            logger.debug("Closed inventory DB %s", self.db_file)
