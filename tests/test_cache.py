import sqlite3

import pytest

from echonet_local.cache import AccessoryCacheSQLite, AccessoryRecord
from echonet_local.database import SUPPORTED_SCHEMA_VERSION, ensure_schema_and_migrate


def make_record(uuid='acc-1', address='192.168.1.10', name='RAS-X40'):
    return AccessoryRecord(uuid=uuid, address=address, eoj=(0x01, 0x30, 0x01), name=name,
                           model='RAS-X40', maker_code='000008', serial='SN1', swing_supported=True)


def test_new_database_gets_schema_and_user_version(tmp_path):
    db_file = str(tmp_path / "echonet.db")
    ensure_schema_and_migrate(db_file)

    conn = sqlite3.connect(db_file)
    assert conn.execute("PRAGMA user_version").fetchone()[0] == SUPPORTED_SCHEMA_VERSION
    cols = [r[1] for r in conn.execute("PRAGMA table_info(accessories)").fetchall()]
    conn.close()
    assert {'uuid', 'address', 'eoj', 'name', 'serial', 'swing_supported'} <= set(cols)


def test_migration_is_repeatable(tmp_path):
    db_file = str(tmp_path / "echonet.db")
    ensure_schema_and_migrate(db_file)
    ensure_schema_and_migrate(db_file)


def test_newer_schema_is_refused(tmp_path):
    db_file = str(tmp_path / "future.db")
    conn = sqlite3.connect(db_file)
    conn.execute(f"PRAGMA user_version = {SUPPORTED_SCHEMA_VERSION + 1}")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError):
        ensure_schema_and_migrate(db_file)


class TestAccessoryCache:
    def test_save_and_reload(self, tmp_path):
        db_file = str(tmp_path / "echonet.db")
        cache = AccessoryCacheSQLite(db_file)
        cache.save(make_record())

        reloaded = AccessoryCacheSQLite(db_file)
        record = reloaded.get('acc-1')
        assert record == make_record()
        assert record.eoj == (0x01, 0x30, 0x01)
        assert record.swing_supported is True

    def test_save_updates_existing_row(self, tmp_path):
        db_file = str(tmp_path / "echonet.db")
        cache = AccessoryCacheSQLite(db_file)
        cache.save(make_record())
        cache.save(make_record(address='192.168.1.20'))

        reloaded = AccessoryCacheSQLite(db_file)
        assert len(reloaded.load_all()) == 1
        assert reloaded.get('acc-1').address == '192.168.1.20'

    def test_remove(self, tmp_path):
        cache = AccessoryCacheSQLite(str(tmp_path / "echonet.db"))
        cache.save(make_record())

        assert cache.remove('acc-1') is True
        assert cache.remove('acc-1') is False
        assert cache.get('acc-1') is None

    def test_touch_updates_last_seen(self, tmp_path):
        db_file = str(tmp_path / "echonet.db")
        cache = AccessoryCacheSQLite(db_file)
        cache.save(make_record())
        conn = sqlite3.connect(db_file)
        conn.execute("UPDATE accessories SET last_seen = '2000-01-01 00:00:00'")
        conn.commit()

        cache.touch('acc-1')

        last_seen = conn.execute("SELECT last_seen FROM accessories WHERE uuid = 'acc-1'").fetchone()[0]
        conn.close()
        assert last_seen != '2000-01-01 00:00:00'

    def test_invalid_cached_object_id_is_skipped(self, tmp_path):
        db_file = str(tmp_path / "echonet.db")
        ensure_schema_and_migrate(db_file)
        conn = sqlite3.connect(db_file)
        conn.execute("INSERT INTO accessories (uuid, address, eoj, name) VALUES ('bad', '10.0.0.1', 'x,y', 'Bad')")
        conn.commit()
        conn.close()

        cache = AccessoryCacheSQLite(db_file)
        assert cache.load_all() == []
