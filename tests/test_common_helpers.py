import math
import unittest

from utils.common_helpers import normalize_symbol, pick_number, pick_str, to_number


class TestToNumber(unittest.TestCase):
    def test_numbers_pass_through(self):
        self.assertEqual(to_number(42), 42)
        self.assertEqual(to_number(-1.5), -1.5)
        self.assertEqual(to_number(0), 0)

    def test_numeric_strings_are_parsed(self):
        self.assertEqual(to_number("12.5"), 12.5)
        self.assertEqual(to_number(" -3 "), -3.0)
        self.assertEqual(to_number("1e6"), 1_000_000.0)

    def test_unusable_values_become_none(self):
        for raw in (None, "", "   ", "abc", "N/A", True, False, [], {}, math.nan, math.inf, "nan", "-inf"):
            with self.subTest(raw=raw):
                self.assertIsNone(to_number(raw))


class TestPickers(unittest.TestCase):
    def test_pick_number_first_usable_candidate_wins(self):
        row = {"pbRatio": None, "ptbRatio": "3.2"}
        self.assertEqual(pick_number(row, ("pbRatio", "ptbRatio")), 3.2)

    def test_pick_number_prefers_first_when_both_present(self):
        row = {"adjDividend": 0.25, "dividend": 0.24}
        self.assertEqual(pick_number(row, ("adjDividend", "dividend")), 0.25)

    def test_pick_number_none_when_nothing_usable(self):
        self.assertIsNone(pick_number({"a": "x"}, ("a", "b")))

    def test_pick_str_defaults(self):
        self.assertEqual(pick_str({}, ("type",)), "N/A")
        self.assertEqual(pick_str({"type": ""}, ("type",), default="USD"), "USD")
        self.assertIsNone(pick_str({}, ("symbol",), default=None))

    def test_pick_str_fallback_order(self):
        row = {"finalLink": "", "link": "https://sec.gov/x"}
        self.assertEqual(pick_str(row, ("finalLink", "link")), "https://sec.gov/x")

    def test_pick_str_stringifies(self):
        self.assertEqual(pick_str({"calendarYear": 2024}, ("calendarYear",)), "2024")

    def test_normalize_symbol(self):
        self.assertEqual(normalize_symbol(" aapl "), "AAPL")
        self.assertEqual(normalize_symbol(None), "")


if __name__ == "__main__":
    unittest.main()
