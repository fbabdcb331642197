import unittest
from datetime import date, timedelta

import pandas as pd

from folio.engine.projection import project_growth
from folio.engine.rebalance import rebalance_plan, target_weight_total
from folio.engine.resample import filter_history, month_end, valuations_to_series
from folio.engine.summary import position_gain_loss, portfolio_summary
from folio.engine.types import PortfolioValuationPoint, Position

D0 = date(2023, 6, 1)
TODAY = D0 + timedelta(days=365)


def _positions():
    return [
        Position("a", "AAA", shares=10, cost_basis=1000.0, purchase_date=D0, target_weight=60.0),
        Position("b", "BBB", shares=5, cost_basis=500.0, purchase_date=D0 + timedelta(days=100), target_weight=40.0),
    ]


class SummaryTests(unittest.TestCase):
    def test_totals_and_day_change(self):
        valuations = [
            PortfolioValuationPoint(TODAY - timedelta(days=1), 1700.0, 1500.0, 13.0),
            PortfolioValuationPoint(TODAY, 1750.0, 1500.0, 16.0),
        ]
        summary = portfolio_summary(_positions(), {"AAA": 120.0, "BBB": 110.0}, valuations, TODAY)
        self.assertEqual(summary["total_value"], 1750.0)
        self.assertEqual(summary["total_invested"], 1500.0)
        self.assertEqual(summary["total_gain"], 250.0)
        self.assertEqual(summary["total_gain_pct"], 16.67)
        self.assertEqual(summary["day_change"], 50.0)
        self.assertEqual(summary["day_change_pct"], 2.94)
        self.assertEqual(summary["xirr_status"], "converged")
        self.assertGreater(summary["xirr_pct"], 0.0)
        self.assertEqual([p["position_id"] for p in summary["positions"]], ["a", "b"])

    def test_future_purchase_not_counted(self):
        positions = _positions() + [Position("c", "CCC", shares=1, cost_basis=99.0, purchase_date=TODAY + timedelta(days=3))]
        summary = portfolio_summary(positions, {"AAA": 120.0, "BBB": 110.0}, [], TODAY)
        self.assertEqual(summary["total_invested"], 1500.0)
        self.assertIsNone(summary["day_change"])

    def test_missing_price_is_neutral(self):
        row = position_gain_loss(_positions()[1], None)
        self.assertEqual(row["current_value"], 500.0)
        self.assertEqual(row["gain"], 0.0)
        self.assertFalse(row["priced"])


class RebalanceTests(unittest.TestCase):
    def test_plan(self):
        positions = _positions()
        rows = rebalance_plan(positions, {"a": 750.0, "b": 250.0})
        self.assertEqual(target_weight_total(positions), 100.0)
        self.assertEqual([r["position_id"] for r in rows], ["a", "b"])
        a, b = rows
        self.assertAlmostEqual(a["current_weight_pct"], 75.0)
        self.assertAlmostEqual(a["diff_weight_pct"], -15.0)
        self.assertAlmostEqual(a["diff_amount"], -150.0)
        self.assertAlmostEqual(b["diff_amount"], 150.0)

    def test_sorted_by_current_weight(self):
        rows = rebalance_plan(_positions(), {"a": 100.0, "b": 300.0})
        self.assertEqual([r["position_id"] for r in rows], ["b", "a"])

    def test_no_value(self):
        self.assertEqual(rebalance_plan(_positions(), {}), [])


class ProjectionTests(unittest.TestCase):
    def test_compounding_without_contributions(self):
        rows = project_growth(1000.0, 0.0, 12.0, 1)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0], {"year": 0, "total": 1000.0, "principal": 1000.0, "interest": 0.0})
        self.assertAlmostEqual(rows[1]["total"], 1000.0 * 1.01 ** 12)

    def test_contributions_without_return(self):
        rows = project_growth(1000.0, 100.0, 0.0, 2)
        self.assertEqual(rows[-1]["principal"], 3400.0)
        self.assertAlmostEqual(rows[-1]["total"], 3400.0)
        self.assertAlmostEqual(rows[-1]["interest"], 0.0)

    def test_negative_years_rejected(self):
        with self.assertRaises(ValueError):
            project_growth(1000.0, 0.0, 5.0, -1)


class ResampleTests(unittest.TestCase):
    def setUp(self):
        index = pd.date_range("2023-06-01", "2024-06-30", freq="D")
        self.values = pd.Series(range(len(index)), index=index, dtype=float)

    def test_day_range(self):
        self.assertEqual(len(filter_history(self.values, "DAY")), 30)

    def test_month_range_is_year_to_date(self):
        out = filter_history(self.values, "MONTH")
        self.assertEqual(out.index[0], pd.Timestamp("2024-01-01"))
        self.assertEqual(out.index[-1], pd.Timestamp("2024-06-30"))

    def test_year_range_month_end(self):
        out = filter_history(self.values, "YEAR")
        self.assertEqual(len(out), 12)
        self.assertEqual(out.index[0], pd.Timestamp("2023-07-31"))

    def test_all_range_month_end(self):
        out = filter_history(self.values, "ALL")
        self.assertEqual(len(out), 13)
        self.assertEqual(out.index[-1], pd.Timestamp("2024-06-30"))

    def test_month_end_keeps_real_last_date(self):
        sparse = self.values.loc[self.values.index != pd.Timestamp("2024-02-29")]
        self.assertIn(pd.Timestamp("2024-02-28"), month_end(sparse).index)

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            filter_history(self.values, "WEEK")

    def test_valuations_to_series(self):
        points = [PortfolioValuationPoint(D0, 10.0, 10.0, 0.0), PortfolioValuationPoint(D0 + timedelta(days=1), 11.0, 10.0, 10.0)]
        series = valuations_to_series(points)
        self.assertEqual(list(series), [10.0, 11.0])
        self.assertEqual(series.index[0], pd.Timestamp(D0))


if __name__ == "__main__":
    unittest.main()
