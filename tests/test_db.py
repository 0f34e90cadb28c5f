"""Tests for timesgate.db."""

from __future__ import annotations

from timesgate.db import get_db, init_db, set_db_path


class TestInitDb:
    def test_creates_only_kv_store(self, db_path):
        conn = get_db()
        objects = {
            (row["type"], row["name"])
            for row in conn.execute(
                "SELECT type, name FROM sqlite_master WHERE name NOT LIKE 'sqlite_%'"
            )
        }
        assert objects == {("table", "kv_store")}

    def test_idempotent(self, db_path):
        get_db().execute("INSERT INTO kv_store (key, value) VALUES ('k', 'v')")
        get_db().commit()
        init_db()
        row = get_db().execute("SELECT value FROM kv_store WHERE key = 'k'").fetchone()
        assert row["value"] == "v"

    def test_set_db_path_switches_connection(self, db_path, tmp_path):
        first = get_db()
        set_db_path(tmp_path / "other.db")
        init_db()
        assert get_db() is not first
        assert get_db().execute("SELECT COUNT(*) FROM kv_store").fetchone()[0] == 0

    def test_data_dir_from_env(self, tmp_path, monkeypatch):
        import timesgate.db as db

        monkeypatch.setattr(db, "_DB_PATH", None)
        monkeypatch.setenv("TIMESGATE_DATA_DIR", str(tmp_path / "data"))
        assert db._db_path() == tmp_path / "data" / "timesgate.db"
        assert (tmp_path / "data").is_dir()
