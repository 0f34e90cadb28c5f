"""Tests for persisted PC-monitor settings."""

from __future__ import annotations

import pytest

from timesgate.db import get_db
from timesgate.sync.settings import KEY_PREFIX, PcMonitorSettings, SettingsStore


@pytest.fixture()
def store(db_path):
    return SettingsStore()


def _raw_insert(key: str, value: str) -> None:
    conn = get_db()
    conn.execute("INSERT INTO kv_store (key, value) VALUES (?, ?)", (key, value))
    conn.commit()


class TestPcMonitorSettings:
    def test_json_uses_camel_case(self):
        s = PcMonitorSettings(lcd_index=2, enabled=True)
        assert s.to_json() == '{"lcdIndex":2,"enabled":true}'

    def test_accepts_alias(self):
        s = PcMonitorSettings.model_validate({"lcdIndex": 1, "enabled": False})
        assert s.lcd_index == 1
        assert s.enabled is False


class TestSaveLoad:
    def test_round_trip(self, store):
        settings = PcMonitorSettings(lcd_index=3, enabled=True)
        store.save("192.168.1.20", settings)
        assert store.load("192.168.1.20") == settings

    def test_overwrite(self, store):
        store.save("192.168.1.20", PcMonitorSettings(lcd_index=3, enabled=True))
        store.save("192.168.1.20", PcMonitorSettings(lcd_index=0, enabled=False))
        assert store.load("192.168.1.20") == PcMonitorSettings(lcd_index=0, enabled=False)

    def test_unknown_address(self, store):
        assert store.load("10.0.0.99") is None

    @pytest.mark.parametrize("raw", [
        "{not json",
        "[]",
        '{"lcdIndex": "two", "enabled": true}',
        '{"enabled": true}',
        "null",
    ])
    def test_corrupt_record_is_absent(self, store, raw):
        _raw_insert(KEY_PREFIX + "10.0.0.5", raw)
        assert store.load("10.0.0.5") is None

    def test_delete(self, store):
        store.save("10.0.0.5", PcMonitorSettings(lcd_index=1, enabled=True))
        store.delete("10.0.0.5")
        assert store.load("10.0.0.5") is None

    def test_persists_across_connections(self, db_path):
        SettingsStore().save("10.0.0.7", PcMonitorSettings(lcd_index=4, enabled=True))
        import sqlite3
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        reopened = SettingsStore(conn_factory=lambda: conn)
        assert reopened.load("10.0.0.7") == PcMonitorSettings(lcd_index=4, enabled=True)
        conn.close()


class TestEnumerateAll:
    def test_skips_malformed_and_foreign_keys(self, store):
        store.save("10.0.0.1", PcMonitorSettings(lcd_index=0, enabled=True))
        store.save("10.0.0.2", PcMonitorSettings(lcd_index=1, enabled=False))
        _raw_insert(KEY_PREFIX + "10.0.0.3", "garbage")
        _raw_insert("screen_configs_10.0.0.1", '{"lcdIndex": 0, "enabled": true}')
        _raw_insert(KEY_PREFIX, '{"lcdIndex": 0, "enabled": true}')

        entries = dict(store.enumerate_all())
        assert set(entries) == {"10.0.0.1", "10.0.0.2"}
        assert entries["10.0.0.2"].enabled is False

    def test_empty(self, store):
        assert store.enumerate_all() == []
