from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Dict, List

import structlog

from .cache_layer import CacheLayer
from .config import settings
from .engine.types import PriceSeries
from .providers.common import frame_to_series, records_to_series, series_to_records
from .providers.yfinance_adapter import YFinanceAdapter
from .utils import RateLimiter, now_utc_iso, retry_call

log = structlog.get_logger()

FUND_INFO_TTL_HOURS = 24 * 7


def _retry_on_empty_df(df):
    if df is None:
        return True
    if getattr(df, "empty", False):
        return True
    return False


def default_cache() -> CacheLayer | None:
    if not bool(settings.cache_enabled):
        return None
    return CacheLayer(settings.cache_dir, settings.cache_db_path, settings.cache_ttl_hours)


class MarketData:
    """Fetch collaborator for the engine.

    Fans out one price fetch per instrument and fans back in keyed by
    symbol, so the engine never sees completion order. A failed symbol is
    simply absent from the result. The cache is injected by the caller.
    """

    def __init__(self, cache: CacheLayer | None = None, adapter=None, max_workers: int | None = None):
        self.adapter = adapter or YFinanceAdapter(enabled=bool(settings.yf_enable))
        self.cache = cache
        self.max_workers = max(1, int(max_workers or settings.fetch_max_workers))
        self.rate_limiter = RateLimiter(settings.market_rate_limit_seconds)
        self.provenance: Dict[str, list] = {}

    def _record(self, sym: str, endpoint: str, cache_hit: bool, cache_age: float | None, success: bool):
        self.provenance.setdefault(sym, []).append(
            {
                "provider": getattr(self.adapter, "name", type(self.adapter).__name__),
                "endpoint": endpoint,
                "cache_hit": cache_hit,
                "cache_age_hours": cache_age,
                "success": success,
            }
        )

    def _cache_key(self, endpoint: str, symbol: str, start: str = "", end: str = ""):
        provider = getattr(self.adapter, "name", "provider")
        return self.cache.make_key(provider, endpoint, symbol, start, end, {"interval": "1d"})

    def _fetch_prices(self, sym: str, start: str, end: str):
        """Runs on a worker thread; returns (symbol, series, provenance_record)."""
        if self.cache:
            payload, age = self.cache.get(self._cache_key("prices", sym, start, end))
            series = records_to_series(payload, sym) if payload else None
            if series is not None:
                return sym, series, (True, age, True)

        def _call():
            self.rate_limiter.wait()
            return self.adapter.prices(sym, start=start, end=end)

        try:
            df = retry_call(
                _call,
                attempts=settings.market_retry_attempts,
                base_delay=settings.http_retry_backoff_seconds,
                retry_on_result=_retry_on_empty_df,
            )
        except Exception as exc:
            log.warning("prices_fetch_failed", symbol=sym, error=str(exc))
            df = None
        series = frame_to_series(df, sym)
        if series is not None and self.cache:
            self.cache.set(self._cache_key("prices", sym, start, end), series_to_records(series))
        return sym, series, (False, None, series is not None)

    def load(self, symbols: List[str], start: date, end: date) -> Dict[str, PriceSeries]:
        symbols = sorted({sym for sym in symbols if sym})
        start_s, end_s = start.isoformat(), end.isoformat()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            results = list(pool.map(lambda sym: self._fetch_prices(sym, start_s, end_s), symbols))

        prices: Dict[str, PriceSeries] = {}
        for sym, series, (cache_hit, age, success) in sorted(results, key=lambda item: item[0]):
            self._record(sym, "prices", cache_hit, age, success)
            if series is not None:
                prices[sym] = series
        missing = [sym for sym in symbols if sym not in prices]
        log.info("prices_loaded", requested=len(symbols), loaded=len(prices), missing=missing)
        return prices

    def load_series(self, symbol: str, start: date, end: date) -> PriceSeries | None:
        return self.load([symbol], start, end).get(symbol)

    def load_quotes(self, symbols: List[str]) -> Dict[str, float]:
        quote_ttl_hours = max(float(settings.quote_ttl_minutes) / 60.0, 0.0)
        quotes: Dict[str, float] = {}
        for sym in sorted({s for s in symbols if s}):
            key = self._cache_key("quote", sym) if self.cache else None
            if key and quote_ttl_hours > 0:
                payload, age = self.cache.get(key)
                if isinstance(payload, dict) and payload.get("price"):
                    quotes[sym] = float(payload["price"])
                    self._record(sym, "quote", True, age, True)
                    continue
            self.rate_limiter.wait()
            payload = self.adapter.quote(sym)
            success = isinstance(payload, dict) and bool(payload.get("price"))
            self._record(sym, "quote", False, None, success)
            if not success:
                continue
            quotes[sym] = float(payload["price"])
            if key and quote_ttl_hours > 0:
                self.cache.set(key, {**payload, "fetched_at_utc": now_utc_iso()}, ttl_hours=quote_ttl_hours)
        return quotes

    def fund_info(self, symbol: str) -> dict | None:
        if self.cache:
            payload, _hit, _age = self.cache.fetch(
                self._cache_key("fund_info", symbol),
                lambda: self.adapter.fund_info(symbol),
                ttl_hours=FUND_INFO_TTL_HOURS,
            )
            return payload
        return self.adapter.fund_info(symbol)
