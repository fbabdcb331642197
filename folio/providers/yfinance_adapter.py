from datetime import date, timedelta
from typing import Optional
import pandas as pd
import structlog
import yfinance as yf
from .common import normalize_prices

log = structlog.get_logger()


class YFinanceAdapter:
    name = "yfinance"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def prices(self, symbol: str, start: str, end: str) -> Optional[pd.DataFrame]:
        if not self.enabled:
            return None
        try:
            # yfinance treats end as exclusive
            end_excl = (date.fromisoformat(end) + timedelta(days=1)).isoformat()
            df = yf.download(symbol, start=start, end=end_excl, interval="1d", auto_adjust=False, progress=False)
        except Exception as exc:
            log.warning("yfinance_prices_failed", symbol=symbol, error=str(exc))
            return None
        if isinstance(df, pd.DataFrame):
            if isinstance(df.columns, pd.MultiIndex):
                df.columns = [col[0] for col in df.columns]
            df = df.reset_index()
            return normalize_prices(df, symbol)
        return None

    def quote(self, symbol: str) -> Optional[dict]:
        if not self.enabled:
            return None
        try:
            fast = yf.Ticker(symbol).fast_info
            price = fast.last_price
            prev = fast.previous_close
        except Exception as exc:
            log.warning("yfinance_quote_failed", symbol=symbol, error=str(exc))
            return None
        if price is None:
            return None
        change_pct = None
        if prev:
            change_pct = (float(price) / float(prev) - 1.0) * 100.0
        return {"price": float(price), "change_pct": change_pct}

    def fund_info(self, symbol: str) -> Optional[dict]:
        if not self.enabled:
            return None
        try:
            info = yf.Ticker(symbol).info
        except Exception as exc:
            log.warning("yfinance_info_failed", symbol=symbol, error=str(exc))
            return None
        return info if isinstance(info, dict) and info else None
