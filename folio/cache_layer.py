import json
import sqlite3
import hashlib
from contextlib import closing
from pathlib import Path
from datetime import datetime, timezone

import structlog

log = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_index(
    cache_key TEXT PRIMARY KEY,
    symbol TEXT,
    path TEXT NOT NULL,
    first_seen_utc TEXT NOT NULL,
    last_updated_utc TEXT NOT NULL,
    ttl_hours REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cache_symbol ON cache_index(symbol);
"""

UPSERT = """
INSERT INTO cache_index(cache_key, symbol, path, first_seen_utc, last_updated_utc, ttl_hours)
VALUES(:key, :symbol, :path, :now, :now, :ttl)
ON CONFLICT(cache_key) DO UPDATE SET
    path=excluded.path, last_updated_utc=excluded.last_updated_utc, ttl_hours=excluded.ttl_hours
"""


def _utc_now():
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _age_hours(last_updated_utc: str) -> float:
    updated = datetime.fromisoformat(last_updated_utc.replace("Z", "+00:00"))
    return (datetime.now(timezone.utc) - updated).total_seconds() / 3600.0


def params_digest(params: dict | None) -> str:
    return hashlib.sha256(json.dumps(params or {}, sort_keys=True, ensure_ascii=False).encode("utf-8")).hexdigest()


class CacheLayer:
    """TTL cache for market-data payloads, handed explicitly to whoever fetches.

    The SQLite table ``cache_index`` holds one row per key (own TTL, symbol
    column for per-instrument invalidation); payloads are JSON files sharded
    under ``root_dir``. Expired rows read as misses until purged.
    """

    def __init__(self, root_dir: str = ".cache", db_path: str = "./data/cache.sqlite3", default_ttl_hours: float = 24):
        self.root_dir = Path(root_dir)
        self.db_path = db_path
        self.default_ttl_hours = float(default_ttl_hours)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.executescript(SCHEMA)

    def _connect(self):
        return sqlite3.connect(self.db_path, isolation_level=None)

    @staticmethod
    def make_key(provider: str, endpoint: str, symbol: str, start: str = "", end: str = "", params: dict | None = None) -> str:
        return "|".join([provider, endpoint, symbol, start, end, params_digest(params)])

    @staticmethod
    def _symbol_of(cache_key: str):
        parts = cache_key.split("|")
        return parts[2] if len(parts) > 2 else None

    def _payload_path(self, cache_key: str) -> Path:
        digest = hashlib.sha256(cache_key.encode("utf-8")).hexdigest()
        shard = self.root_dir / digest[:2] / digest[2:4]
        shard.mkdir(parents=True, exist_ok=True)
        return shard / f"{digest}.json"

    def get(self, cache_key: str):
        """(payload, age_hours); (None, age) when expired, (None, None) when unknown."""
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT path, last_updated_utc, ttl_hours FROM cache_index WHERE cache_key=?", (cache_key,)
            ).fetchone()
        if row is None:
            return None, None
        path, updated, ttl = row
        age = _age_hours(updated)
        if age > float(ttl):
            return None, age
        try:
            return json.loads(Path(path).read_text(encoding="utf-8")), age
        except (OSError, ValueError):
            log.warning("cache_payload_unreadable", cache_key=cache_key, path=path)
            return None, None

    def set(self, cache_key: str, payload, ttl_hours: float | None = None):
        path = self._payload_path(cache_key)
        path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        row = {
            "key": cache_key,
            "symbol": self._symbol_of(cache_key),
            "path": str(path),
            "now": _utc_now(),
            "ttl": float(self.default_ttl_hours if ttl_hours is None else ttl_hours),
        }
        with closing(self._connect()) as conn:
            conn.execute(UPSERT, row)

    def fetch(self, cache_key: str, fetch_fn, ttl_hours: float | None = None):
        """Read-through: (payload, cache_hit, age_hours). A None result is not stored."""
        cached, age = self.get(cache_key)
        if cached is not None:
            return cached, True, age
        fresh = fetch_fn()
        if fresh is None:
            return None, False, age
        self.set(cache_key, fresh, ttl_hours)
        return fresh, False, 0.0

    def _drop(self, where: str = "", args: tuple = (), predicate=None) -> int:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT cache_key, path, last_updated_utc, ttl_hours FROM cache_index {where}", args
            ).fetchall()
            doomed = [(key, path) for key, path, updated, ttl in rows if predicate is None or predicate(updated, ttl)]
            for key, path in doomed:
                Path(path).unlink(missing_ok=True)
            conn.executemany("DELETE FROM cache_index WHERE cache_key=?", [(key,) for key, _ in doomed])
        return len(doomed)

    def invalidate(self, cache_key: str) -> bool:
        return self._drop("WHERE cache_key=?", (cache_key,)) > 0

    def invalidate_symbol(self, symbol: str) -> int:
        """Drop every entry cached for one instrument (prices, quotes, fund info)."""
        removed = self._drop("WHERE symbol=?", (symbol,))
        if removed:
            log.info("cache_invalidated", symbol=symbol, entries=removed)
        return removed

    def purge_expired(self) -> int:
        removed = self._drop(predicate=lambda updated, ttl: _age_hours(updated) > float(ttl))
        log.info("cache_purged", entries=removed)
        return removed

    def invalidate_all(self) -> int:
        removed = self._drop()
        log.info("cache_cleared", entries=removed)
        return removed

    def stats(self) -> dict:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT last_updated_utc, ttl_hours FROM cache_index").fetchall()
        expired = sum(1 for updated, ttl in rows if _age_hours(updated) > float(ttl))
        return {"total_entries": len(rows), "valid_entries": len(rows) - expired, "expired_entries": expired}
