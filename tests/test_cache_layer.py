import sqlite3
import tempfile
import unittest
from pathlib import Path

from folio.cache_layer import CacheLayer


class CacheLayerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.db_path = str(root / "cache.sqlite3")
        self.cache = CacheLayer(str(root / "payloads"), self.db_path, default_ttl_hours=24)

    def tearDown(self):
        self._tmp.cleanup()

    def _expire(self, key):
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            "UPDATE cache_index SET last_updated_utc='2000-01-01T00:00:00Z' WHERE cache_key=?", (key,)
        )
        conn.commit()
        conn.close()

    def test_key_carries_symbol(self):
        key = self.cache.make_key("yfinance", "prices", "VWRL.AS", "2024-01-01", "2024-02-01", {"interval": "1d"})
        self.assertTrue(key.startswith("yfinance|prices|VWRL.AS|2024-01-01|2024-02-01|"))
        self.assertEqual(CacheLayer._symbol_of(key), "VWRL.AS")

    def test_set_then_get(self):
        key = self.cache.make_key("yfinance", "quote", "AAA")
        self.cache.set(key, {"price": 10.5})
        data, age = self.cache.get(key)
        self.assertEqual(data, {"price": 10.5})
        self.assertLess(age, 1.0)

    def test_miss(self):
        self.assertEqual(self.cache.get("nope"), (None, None))

    def test_expired_entry_is_a_miss(self):
        key = self.cache.make_key("yfinance", "quote", "AAA")
        self.cache.set(key, {"price": 10.5}, ttl_hours=0.25)
        self._expire(key)
        data, age = self.cache.get(key)
        self.assertIsNone(data)
        self.assertGreater(age, 0.25)

    def test_fetch_calls_through_once(self):
        key = self.cache.make_key("yfinance", "fund_info", "AAA")
        calls = []

        def _fetch():
            calls.append(1)
            return {"longName": "Fund A"}

        first = self.cache.fetch(key, _fetch)
        second = self.cache.fetch(key, _fetch)
        self.assertEqual(first[:2], ({"longName": "Fund A"}, False))
        self.assertEqual(second[:2], ({"longName": "Fund A"}, True))
        self.assertEqual(len(calls), 1)

    def test_fetch_does_not_store_none(self):
        key = self.cache.make_key("yfinance", "fund_info", "AAA")
        self.assertEqual(self.cache.fetch(key, lambda: None)[:2], (None, False))
        self.assertEqual(self.cache.stats()["total_entries"], 0)

    def test_invalidate_key(self):
        key = self.cache.make_key("yfinance", "quote", "AAA")
        self.cache.set(key, {"price": 1.0})
        self.assertTrue(self.cache.invalidate(key))
        self.assertFalse(self.cache.invalidate(key))
        self.assertEqual(self.cache.get(key), (None, None))

    def test_invalidate_symbol_keeps_other_symbols(self):
        for endpoint in ("prices", "quote", "fund_info"):
            self.cache.set(self.cache.make_key("yfinance", endpoint, "AAA"), {"v": endpoint})
        other = self.cache.make_key("yfinance", "quote", "BBB")
        self.cache.set(other, {"price": 2.0})
        self.assertEqual(self.cache.invalidate_symbol("AAA"), 3)
        self.assertEqual(self.cache.get(other)[0], {"price": 2.0})
        self.assertEqual(self.cache.stats()["total_entries"], 1)

    def test_stats_and_purge(self):
        fresh = self.cache.make_key("yfinance", "quote", "AAA")
        stale = self.cache.make_key("yfinance", "quote", "BBB")
        self.cache.set(fresh, {"price": 1.0})
        self.cache.set(stale, {"price": 2.0})
        self._expire(stale)
        self.assertEqual(self.cache.stats(), {"total_entries": 2, "valid_entries": 1, "expired_entries": 1})
        self.assertEqual(self.cache.purge_expired(), 1)
        self.assertEqual(self.cache.stats(), {"total_entries": 1, "valid_entries": 1, "expired_entries": 0})

    def test_invalidate_all(self):
        self.cache.set(self.cache.make_key("yfinance", "quote", "AAA"), {"price": 1.0})
        self.cache.invalidate_all()
        self.assertEqual(self.cache.stats()["total_entries"], 0)


if __name__ == "__main__":
    unittest.main()
