import unittest

from services.kpi.cagr import (
    INSUFFICIENT_DATA,
    INVALID_BASELINE,
    INVALID_ENDPOINT,
    INVALID_HORIZON,
    OUT_OF_RANGE,
    calculate_cagr,
    format_cagr_report,
    format_number,
)

SERIES = [
    {"date": "2019", "value": 100},
    {"date": "2020", "value": 110},
    {"date": "2021", "value": 121},
    {"date": "2022", "value": 133.1},
]


class TestCalculateCagr(unittest.TestCase):
    def test_three_year_growth(self):
        (calc,) = calculate_cagr(SERIES, [3])
        self.assertTrue(calc.available)
        self.assertEqual((calc.start_date, calc.end_date), ("2019", "2022"))
        self.assertEqual((calc.start_value, calc.end_value), (100, 133.1))
        self.assertAlmostEqual(calc.cagr, 10.0, places=6)
        self.assertEqual(calc.formula, "((133.1 / 100) ^ (1/3)) - 1")
        self.assertIsNone(calc.reason)

    def test_one_year_uses_last_two_points(self):
        (calc,) = calculate_cagr(SERIES, [1])
        self.assertEqual(calc.start_date, "2021")
        self.assertAlmostEqual(calc.cagr, 10.0, places=6)

    def test_insufficient_data(self):
        (calc,) = calculate_cagr(SERIES, [5])
        self.assertFalse(calc.available)
        self.assertEqual(calc.reason, INSUFFICIENT_DATA)
        self.assertIsNone(calc.cagr)

    def test_exactly_enough_points(self):
        self.assertTrue(calculate_cagr(SERIES[:2], [1])[0].available)
        self.assertFalse(calculate_cagr(SERIES[:1], [1])[0].available)

    def test_invalid_baseline(self):
        for start in (0, -5, None):
            with self.subTest(start=start):
                series = [{"date": "2020", "value": start}, {"date": "2021", "value": 10}]
                (calc,) = calculate_cagr(series, [1])
                self.assertFalse(calc.available)
                self.assertEqual(calc.reason, INVALID_BASELINE)
                self.assertEqual(calc.start_date, "2020")

    def test_invalid_endpoint(self):
        for end in (-1, None, "x"):
            with self.subTest(end=end):
                series = [{"date": "2020", "value": 10}, {"date": "2021", "value": end}]
                (calc,) = calculate_cagr(series, [1])
                self.assertFalse(calc.available)
                self.assertEqual(calc.reason, INVALID_ENDPOINT)

    def test_zero_end_is_total_loss(self):
        (calc,) = calculate_cagr([{"date": "a", "value": 50}, {"date": "b", "value": 0}], [1])
        self.assertTrue(calc.available)
        self.assertAlmostEqual(calc.cagr, -100.0)

    def test_invalid_horizons(self):
        calcs = calculate_cagr(SERIES, [0, -2, 2.5, "abc"])
        self.assertTrue(all(c.reason == INVALID_HORIZON for c in calcs))
        self.assertFalse(any(c.available for c in calcs))

    def test_huge_horizon_is_insufficient_data(self):
        (calc,) = calculate_cagr([{"date": "a", "value": 1}], [10**400])
        self.assertFalse(calc.available)
        self.assertEqual(calc.reason, INSUFFICIENT_DATA)

    def test_overflowing_ratio_is_out_of_range(self):
        series = [{"date": "a", "value": 1e-300}, {"date": "b", "value": 1e300}]
        (calc,) = calculate_cagr(series, [1])
        self.assertFalse(calc.available)
        self.assertIsNone(calc.cagr)
        self.assertEqual(calc.reason, OUT_OF_RANGE)

    def test_huge_int_values_are_out_of_range(self):
        series = [{"date": "a", "value": 1}, {"date": "b", "value": 10**400}]
        (calc,) = calculate_cagr(series, [1])
        self.assertFalse(calc.available)
        self.assertEqual(calc.reason, OUT_OF_RANGE)

    def test_one_result_per_horizon_in_order(self):
        calcs = calculate_cagr(SERIES, [3, 5, 1, 2])
        self.assertEqual([c.horizon for c in calcs], [3, 5, 1, 2])
        self.assertEqual([c.available for c in calcs], [True, False, True, True])

    def test_empty_inputs_never_raise(self):
        self.assertEqual(calculate_cagr([], []), [])
        self.assertEqual(calculate_cagr([], [3])[0].reason, INSUFFICIENT_DATA)

    def test_to_dict_keys(self):
        d = calculate_cagr(SERIES, [3])[0].to_dict()
        self.assertEqual(
            set(d),
            {"horizon", "startDate", "endDate", "startValue", "endValue", "cagr", "formula", "available", "reason"},
        )


class TestFormatCagrReport(unittest.TestCase):
    def test_report_contains_workings(self):
        out = format_cagr_report(SERIES, [3, 5], metric="revenue", ticker="AAPL")
        self.assertTrue(out.startswith("**AAPL revenue CAGR Analysis**"))
        self.assertIn("### 3-Year CAGR: 10.0%", out)
        self.assertIn("**Period:** 2019 → 2022", out)
        self.assertIn("- Starting Value: 100", out)
        self.assertIn("- Ending Value: 133.1", out)
        self.assertIn("- Result: 10.00%", out)
        self.assertIn("### 5-Year CAGR: N/A", out)
        self.assertIn("*Insufficient data points*", out)
        self.assertTrue(out.endswith("*Based on 4 data points from 2019 to 2022*"))

    def test_baseline_reason_text(self):
        out = format_cagr_report([{"date": "a", "value": 0}, {"date": "b", "value": 1}], [1])
        self.assertIn("*Starting value is missing or not positive*", out)
        self.assertTrue(out.startswith("**CAGR Analysis**"))

    def test_empty_inputs(self):
        self.assertEqual(format_cagr_report([], [3]), "Error: No data provided for CAGR calculation")
        self.assertEqual(format_cagr_report(SERIES, []), "Error: No time horizons specified for CAGR calculation")

    def test_format_number(self):
        self.assertEqual(format_number(391035000000), "391,035,000,000")
        self.assertEqual(format_number(1234.5), "1,234.5")
        self.assertEqual(format_number(0.12345), "0.123")
        self.assertEqual(format_number(None), "N/A")


if __name__ == "__main__":
    unittest.main()
