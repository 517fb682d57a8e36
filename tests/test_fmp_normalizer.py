import asyncio
import unittest

from services.fmp.errors import (
    FmpNoDataError,
    FmpTransientError,
    FmpUpstreamError,
)
from services.fmp.resources import (
    BALANCE_SHEET,
    CASH_FLOW,
    STATEMENTS,
    derive_free_cash_flow,
    derive_total_debt,
)
from tests.fmp_fakes import ScriptedUpstream, error, make_service


class TestDerivations(unittest.TestCase):
    def test_total_debt(self):
        self.assertEqual(derive_total_debt({"shortTermDebt": 10, "longTermDebt": 20}), 30)
        self.assertEqual(derive_total_debt({"shortTermDebt": None, "longTermDebt": 20}), 20)
        self.assertEqual(derive_total_debt({"shortTermDebt": 5, "longTermDebt": None}), 5)
        self.assertIsNone(derive_total_debt({"shortTermDebt": None, "longTermDebt": None}))

    def test_free_cash_flow(self):
        self.assertEqual(derive_free_cash_flow({"operatingCashFlow": 100, "capitalExpenditure": -30}), 70)
        self.assertIsNone(derive_free_cash_flow({"operatingCashFlow": 100, "capitalExpenditure": None}))
        self.assertIsNone(derive_free_cash_flow({"operatingCashFlow": None, "capitalExpenditure": -30}))

    def test_every_row_has_every_field(self):
        row = BALANCE_SHEET.normalize_row({}, period="annual")
        self.assertEqual(set(row), set(BALANCE_SHEET.field_names))
        self.assertEqual(row["period"], "annual")
        self.assertEqual(row["date"], "N/A")
        self.assertIsNone(row["totalAssets"])

    def test_statement_table(self):
        self.assertEqual(
            set(STATEMENTS),
            {
                "income_statement",
                "balance_sheet",
                "cash_flow",
                "ratios",
                "key_metrics",
                "enterprise_values",
                "shares_outstanding",
            },
        )


class TestStatementNormalization(unittest.TestCase):
    def test_balance_sheet_total_debt_derived_only_when_missing(self):
        upstream = ScriptedUpstream(
            {
                "balance-sheet-statement/AAPL": [
                    [
                        {"date": "2024-09-28", "period": "Q4", "shortTermDebt": 10, "longTermDebt": "20"},
                        {"date": "2024-06-29", "shortTermDebt": None, "longTermDebt": 85},
                        {"date": "2024-03-30", "totalDebt": 99, "shortTermDebt": 1, "longTermDebt": 1},
                        {"date": "2023-12-30"},
                    ]
                ]
            }
        )
        svc = make_service(upstream)
        out = asyncio.run(svc.get_balance_sheet("aapl"))

        self.assertEqual(out["symbol"], "AAPL")
        self.assertEqual(out["period"], "quarter")
        debts = [r["totalDebt"] for r in out["rows"]]
        self.assertEqual(debts, [30, 85, 99, None])
        self.assertEqual(out["rows"][0]["period"], "Q4")
        self.assertEqual(out["rows"][1]["period"], "quarter")

    def test_cash_flow_free_cash_flow_and_candidates(self):
        upstream = ScriptedUpstream(
            {
                "cash-flow-statement/MSFT": [
                    [
                        {"date": "2024", "operatingCashFlow": 100, "capitalExpenditure": -30},
                        {"date": "2023", "netCashProvidedByOperatingActivities": 90,
                         "investmentsInPropertyPlantAndEquipment": -10},
                        {"date": "2022", "operatingCashFlow": 80, "capitalExpenditure": -5, "freeCashFlow": 60},
                        {"date": "2021", "operatingCashFlow": 70},
                        {"date": "2020", "netCashUsedForInvestingActivites": -12},
                    ]
                ]
            }
        )
        svc = make_service(upstream)
        rows = asyncio.run(svc.get_cash_flow("MSFT", period="annual"))["rows"]

        self.assertEqual([r["freeCashFlow"] for r in rows], [70, 80, 60, None, None])
        self.assertEqual(rows[1]["operatingCashFlow"], 90)
        self.assertEqual(rows[1]["capitalExpenditure"], -10)
        self.assertEqual(rows[4]["netCashUsedForInvestingActivities"], -12)

    def test_numeric_coercion(self):
        upstream = ScriptedUpstream(
            {"income-statement/AAPL": [[{"date": "2024", "revenue": "1000", "netIncome": "n/a",
                                         "eps": "", "ebitdaratio": 0.3, "epsdiluted": 6.1}]]}
        )
        row = asyncio.run(make_service(upstream).get_income_statement("AAPL"))["rows"][0]
        self.assertEqual(row["revenue"], 1000.0)
        self.assertIsNone(row["netIncome"])
        self.assertIsNone(row["eps"])
        self.assertEqual(row["ebitdaRatio"], 0.3)
        self.assertEqual(row["epsDiluted"], 6.1)
        self.assertEqual(row["calendarYear"], "N/A")

    def test_key_metrics_pb_ratio_fallback(self):
        upstream = ScriptedUpstream({"key-metrics/AAPL": [[{"date": "2024", "ptbRatio": 45.1}]]})
        row = asyncio.run(make_service(upstream).get_key_metrics("AAPL"))["rows"][0]
        self.assertEqual(row["pbRatio"], 45.1)

    def test_period_and_limit_sent_upstream(self):
        upstream = ScriptedUpstream({"ratios/AAPL": [[{"date": "2024"}]]})
        asyncio.run(make_service(upstream).get_ratios("AAPL", period="annual", limit=5))
        params = upstream.calls()[0].url.params
        self.assertEqual(params["period"], "annual")
        self.assertEqual(params["limit"], "5")

    def test_default_period_and_limit(self):
        upstream = ScriptedUpstream({"enterprise-values/AAPL": [[{"date": "2024", "enterpriseValue": "3e12"}]]})
        out = asyncio.run(make_service(upstream).get_enterprise_values("AAPL"))
        params = upstream.calls()[0].url.params
        self.assertEqual(params["period"], "quarter")
        self.assertEqual(params["limit"], "12")
        self.assertEqual(out["rows"][0]["enterpriseValue"], 3e12)

    def test_invalid_period_rejected(self):
        upstream = ScriptedUpstream()
        with self.assertRaises(ValueError):
            asyncio.run(make_service(upstream).get_ratios("AAPL", period="monthly"))
        self.assertEqual(upstream.calls(), [])

    def test_empty_statement_is_no_data_error(self):
        upstream = ScriptedUpstream({"balance-sheet-statement/AAPL": [[]]})
        with self.assertRaises(FmpNoDataError) as ctx:
            asyncio.run(make_service(upstream).get_balance_sheet("AAPL"))
        self.assertEqual(str(ctx.exception), "No balance sheet data found for AAPL")
        self.assertEqual(ctx.exception.resource, BALANCE_SHEET.name)

    def test_shares_outstanding_free_float_fallback(self):
        upstream = ScriptedUpstream(
            {"shares_float/AAPL": [[{"date": "2024-10-01", "outstandingShares": 15e9, "freeFloat": 99.8}]]}
        )
        out = asyncio.run(make_service(upstream).get_shares_outstanding("AAPL"))
        self.assertNotIn("period", out)
        self.assertEqual(out["rows"][0]["floatShares"], 99.8)
        self.assertEqual(out["rows"][0]["source"], "N/A")


class TestErrorContext(unittest.TestCase):
    def test_upstream_error_keeps_class_and_gains_prefix(self):
        upstream = ScriptedUpstream({"balance-sheet-statement/AAPL": [error(403)]})
        with self.assertRaises(FmpUpstreamError) as ctx:
            asyncio.run(make_service(upstream).get_balance_sheet("AAPL"))
        msg = str(ctx.exception)
        self.assertTrue(msg.startswith("Failed to fetch balance sheet for AAPL: "))
        self.assertIn("403", msg)
        self.assertEqual(ctx.exception.symbol, "AAPL")
        self.assertEqual(ctx.exception.status, 403)
        self.assertIsInstance(ctx.exception.__cause__, FmpUpstreamError)

    def test_transient_error_keeps_class(self):
        upstream = ScriptedUpstream({"cash-flow-statement/AAPL": [error(503)]})
        with self.assertRaises(FmpTransientError) as ctx:
            asyncio.run(make_service(upstream).get_cash_flow("AAPL"))
        self.assertTrue(str(ctx.exception).startswith("Failed to fetch cash flow for AAPL: "))

    def test_error_message_payload_is_upstream_error(self):
        upstream = ScriptedUpstream({"ratios/AAPL": [{"Error Message": "Invalid API KEY."}]})
        with self.assertRaises(FmpUpstreamError) as ctx:
            asyncio.run(make_service(upstream).get_ratios("AAPL"))
        self.assertIn("Invalid API KEY.", str(ctx.exception))


class TestEventResources(unittest.TestCase):
    def test_dividends_empty_is_success(self):
        upstream = ScriptedUpstream(
            {"historical-price-full/stock_dividend/BRK-B": [{"symbol": "BRK-B", "historical": []}]}
        )
        out = asyncio.run(make_service(upstream).get_dividends("brk-b"))
        self.assertEqual(out["rows"], [])
        self.assertIn("may not pay dividends", out["message"])

    def test_dividends_missing_historical_is_success(self):
        upstream = ScriptedUpstream({"historical-price-full/stock_dividend/XYZ": [{}]})
        out = asyncio.run(make_service(upstream).get_dividends("XYZ"))
        self.assertEqual(out["rows"], [])

    def test_dividends_prefer_adjusted_and_slice(self):
        historical = [{"date": f"2024-01-{i:02d}", "adjDividend": 0.25, "dividend": 0.24} for i in range(1, 26)]
        upstream = ScriptedUpstream({"historical-price-full/stock_dividend/AAPL": [{"historical": historical}]})
        out = asyncio.run(make_service(upstream).get_dividends("AAPL"))
        self.assertEqual(len(out["rows"]), 20)
        self.assertEqual(out["rows"][0]["dividend"], 0.25)
        self.assertNotIn("message", out)

    def test_earnings_calendar_symbol_param_and_slice(self):
        rows = [{"date": f"2024-{m:02d}-01", "eps": 1.0, "epsEstimated": "0.9"} for m in range(1, 13)]
        upstream = ScriptedUpstream({"earnings-calendar": [rows]})
        out = asyncio.run(make_service(upstream).get_earnings_calendar("aapl", limit=5))
        self.assertEqual(upstream.calls()[0].url.params["symbol"], "AAPL")
        self.assertEqual(len(out["rows"]), 5)
        self.assertEqual(out["rows"][0]["epsEstimated"], 0.9)
        self.assertEqual(out["rows"][0]["time"], "N/A")

    def test_filings_link_and_date_fallbacks(self):
        upstream = ScriptedUpstream(
            {
                "sec_filings/AAPL": [
                    [
                        {"acceptedDate": "2024-11-01 06:01:36", "type": "10-K",
                         "link": "https://sec.gov/index", "finalLink": "https://sec.gov/doc"},
                        {"date": "2024-08-02", "link": "https://sec.gov/q"},
                    ]
                ]
            }
        )
        out = asyncio.run(make_service(upstream).get_filings("AAPL"))
        self.assertEqual(out["filingType"], "all")
        first, second = out["rows"]
        self.assertEqual(first["date"], "2024-11-01 06:01:36")
        self.assertEqual(first["link"], "https://sec.gov/doc")
        self.assertEqual(second["link"], "https://sec.gov/q")
        self.assertEqual(second["type"], "N/A")
        self.assertNotIn("type", upstream.calls()[0].url.params)

    def test_filings_type_filter(self):
        upstream = ScriptedUpstream({"sec_filings/AAPL": [[{"date": "2024", "type": "10-K"}]]})
        out = asyncio.run(make_service(upstream).get_filings("AAPL", filing_type="10-K"))
        self.assertEqual(out["filingType"], "10-K")
        self.assertEqual(upstream.calls()[0].url.params["type"], "10-K")

    def test_filings_empty_is_no_data(self):
        upstream = ScriptedUpstream({"sec_filings/AAPL": [[]]})
        with self.assertRaises(FmpNoDataError) as ctx:
            asyncio.run(make_service(upstream).get_filings("AAPL"))
        self.assertEqual(str(ctx.exception), "No SEC filings found for AAPL")

    def test_cash_flow_descriptor_ttl(self):
        self.assertEqual(CASH_FLOW.ttl, 86400)


if __name__ == "__main__":
    unittest.main()
