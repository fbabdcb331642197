import unittest
from datetime import date, timedelta

from folio.engine.orchestrator import fund_report, run_portfolio
from folio.engine.types import Position, PriceSeries, XirrStatus

D0 = date(2024, 1, 2)


def _daily(key, prices, start=D0):
    return PriceSeries.from_pairs(key, [(start + timedelta(days=i), p) for i, p in enumerate(prices)])


class StubMarket:
    """Stands in for MarketData: fixed series, quotes and fund payloads."""

    def __init__(self, series, quotes=None, info=None):
        self.series = series
        self.quotes = quotes or {}
        self.info = info or {}
        self.provenance = {}
        self.loaded = []

    def load(self, symbols, start, end):
        self.loaded.append((tuple(symbols), start, end))
        out = {}
        for sym in sorted(symbols):
            s = self.series.get(sym)
            if s is None:
                continue
            out[sym] = PriceSeries(sym, tuple(p for p in s.points if start <= p.date <= end))
        return out

    def load_series(self, symbol, start, end):
        return self.load([symbol], start, end).get(symbol)

    def load_quotes(self, symbols):
        return {s: q for s, q in self.quotes.items() if s in symbols}

    def fund_info(self, symbol):
        return self.info.get(symbol)


class RunPortfolioTests(unittest.TestCase):
    def setUp(self):
        self.positions = [
            Position("a", "AAA", shares=10, cost_basis=1000.0, purchase_date=D0),
            Position("b", "BBB", shares=5, cost_basis=500.0, purchase_date=D0 + timedelta(days=40)),
            Position("m", "GONE", shares=1, cost_basis=200.0, purchase_date=D0),
        ]
        self.market = StubMarket(
            {
                "AAA": _daily("AAA", [100.0 + i * 0.1 for i in range(60)]),
                # priced at exactly 100 on its purchase day (day 40)
                "BBB": _daily("BBB", [96.0 + i * 0.1 for i in range(60)]),
                "^GSPC": _daily("^GSPC", [4000.0 + i for i in range(60)]),
            },
            quotes={"AAA": 106.0},
        )
        self.today = D0 + timedelta(days=59)

    def test_pipeline_outputs(self):
        result = run_portfolio(self.positions, self.market, self.today, view="monthly", benchmark_symbol="^GSPC")
        valuations = result["valuations"]
        self.assertEqual(valuations[0].date, D0)
        self.assertEqual(valuations[0].cumulative_return_pct, 0.0)
        # the symbol with no data stays in at cost basis
        self.assertEqual(valuations[0].fallback_count, 1)
        self.assertEqual(valuations[0].total_value, 1200.0)
        # live quote for AAA on the last point
        self.assertAlmostEqual(valuations[-1].total_value, 1060.0 + 500.0 * (96.0 + 5.9) / 100.0 + 200.0)
        gains = result["gains"]
        self.assertEqual([p.period_key for p in gains.periods], ["2024-01", "2024-02", "2024-03"])
        self.assertAlmostEqual(gains.total_pl, valuations[-1].total_value - valuations[-1].total_invested)
        self.assertEqual(result["summary"]["total_invested"], 1700.0)
        self.assertEqual(result["xirr"].status, XirrStatus.CONVERGED)
        self.assertEqual(result["benchmark"][0], (D0, 0.0))

    def test_fetch_starts_before_first_purchase(self):
        run_portfolio(self.positions, self.market, self.today, live=False)
        symbols, start, end = self.market.loaded[0]
        self.assertEqual(symbols, ("AAA", "BBB", "GONE"))
        self.assertLess(start, D0)
        self.assertEqual(end, self.today)

    def test_without_live_quotes(self):
        result = run_portfolio(self.positions, self.market, self.today, live=False)
        last = result["valuations"][-1]
        self.assertAlmostEqual(last.total_value, 1000.0 * (100.0 + 5.9) / 100.0 + 500.0 * (96.0 + 5.9) / 100.0 + 200.0)
        self.assertEqual(result["benchmark"], [])

    def test_deterministic(self):
        first = run_portfolio(self.positions, self.market, self.today, live=False)
        second = run_portfolio(self.positions, self.market, self.today, live=False)
        self.assertEqual(first["valuations"], second["valuations"])
        self.assertEqual(first["gains"], second["gains"])

    def test_day_change_against_yesterday_close_before_todays_bar(self):
        positions = [Position("a", "AAA", shares=10, cost_basis=1000.0, purchase_date=D0)]
        market = StubMarket({"AAA": _daily("AAA", [100.0, 110.0])}, quotes={"AAA": 121.0})
        result = run_portfolio(positions, market, D0 + timedelta(days=2))
        summary = result["summary"]
        # the live quote replaced yesterday's point; the change is still measured from its close
        self.assertAlmostEqual(result["valuations"][-1].total_value, 1210.0)
        self.assertEqual(summary["total_value"], 1210.0)
        self.assertEqual(summary["day_change"], 110.0)
        self.assertEqual(summary["day_change_pct"], 10.0)

    def test_day_change_when_todays_bar_exists(self):
        positions = [Position("a", "AAA", shares=10, cost_basis=1000.0, purchase_date=D0)]
        market = StubMarket({"AAA": _daily("AAA", [100.0, 110.0, 115.0])}, quotes={"AAA": 121.0})
        summary = run_portfolio(positions, market, D0 + timedelta(days=2))["summary"]
        self.assertEqual(summary["day_change"], 110.0)

    def test_no_positions(self):
        result = run_portfolio([], self.market, self.today)
        self.assertEqual(result["valuations"], [])
        self.assertIsNone(result["summary"])


class FundReportTests(unittest.TestCase):
    def test_metrics_and_info_with_fallback(self):
        today = D0 + timedelta(days=59)
        market = StubMarket(
            {"FUND": _daily("FUND", [100.0 + i for i in range(60)]), "^GSPC": _daily("^GSPC", [4000.0 + i for i in range(60)])},
            info={
                "FUND": {"longName": "Fund", "holdings": [{"holdingName": "Apple", "holdingPercent": 0.05}]},
                "FUND.AS": {"longName": "Fund (AS)", "category": "Equity"},
            },
        )
        report = fund_report("FUND", market, today, fallback_symbol="FUND.AS")
        self.assertEqual(report["points"], 60)
        self.assertIsNotNone(report["metrics"].beta)
        self.assertAlmostEqual(report["metrics"].cumulative_return_pct, 59.0)
        self.assertEqual(report["info"].name, "Fund")
        self.assertEqual(report["info"].category, "Equity")

    def test_unknown_symbol(self):
        report = fund_report("NOPE", StubMarket({}), D0)
        self.assertEqual(report["points"], 0)
        self.assertIsNone(report["metrics"])
        self.assertIsNone(report["info"])


if __name__ == "__main__":
    unittest.main()
