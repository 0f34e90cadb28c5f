"""Persisted per-device PC-monitor intent.

One JSON record per device address, stored under ``pc_monitor_<address>`` in
the ``kv_store`` table.  Only user intent is kept (screen index, enabled);
runtime loop state is never written.  A record that fails to parse is treated
as if it were not there.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from timesgate.db import get_db

logger = logging.getLogger(__name__)

KEY_PREFIX = "pc_monitor_"


class PcMonitorSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lcd_index: int = Field(alias="lcdIndex", ge=0)
    enabled: bool

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SettingsStore:
    """Key/value store of :class:`PcMonitorSettings` keyed by device address."""

    def __init__(self, conn_factory: Callable[[], sqlite3.Connection] = get_db) -> None:
        self._conn_factory = conn_factory

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn_factory()

    def save(self, address: str, settings: PcMonitorSettings) -> None:
        """Overwrite the record for *address*."""
        self.conn.execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            (KEY_PREFIX + address, settings.to_json()),
        )
        self.conn.commit()

    def load(self, address: str) -> PcMonitorSettings | None:
        """Return the record for *address*, or None if absent or unreadable."""
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (KEY_PREFIX + address,)
            ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Failed to read settings for %s: %s", address, exc)
            return None
        if row is None:
            return None
        return _parse(address, row["value"])

    def delete(self, address: str) -> None:
        self.conn.execute("DELETE FROM kv_store WHERE key = ?", (KEY_PREFIX + address,))
        self.conn.commit()

    def enumerate_all(self) -> list[tuple[str, PcMonitorSettings]]:
        """Every well-formed record; malformed ones are skipped."""
        try:
            rows = self.conn.execute(
                "SELECT key, value FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(KEY_PREFIX), KEY_PREFIX),
            ).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Failed to enumerate settings: %s", exc)
            return []

        entries = []
        for row in rows:
            address = row["key"][len(KEY_PREFIX):]
            if not address:
                continue
            settings = _parse(address, row["value"])
            if settings is not None:
                entries.append((address, settings))
        return entries


def _parse(address: str, raw: str) -> PcMonitorSettings | None:
    try:
        return PcMonitorSettings.model_validate(json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValidationError) as exc:
        logger.warning("Ignoring corrupt settings for %s: %s", address, exc)
        return None
