import csv
import json
import unittest
from datetime import date
from decimal import Decimal

import click
from click.testing import CliRunner

from loan_plan.data_models import AmortizationKind, InterestKind
from loan_plan.main import build_contract_from_options, cli, parse_amount, parse_scenario

FLAT = [
    "-p", "10000", "-r", "1000", "--interest-kind", "fixed", "--type", "linear",
    "-s", "2024-01-01", "-e", "2024-11-01",
]
ANNUITY = ["-p", "12k", "-r", "6%", "-s", "2024-01-01", "-e", "2025-01-01"]


class OptionParsingTests(unittest.TestCase):
    def test_parse_amount_suffixes(self):
        self.assertEqual(parse_amount("500k"), Decimal("500000"))
        self.assertEqual(parse_amount("1.5M"), Decimal("1500000"))
        self.assertEqual(parse_amount("12,000"), Decimal("12000"))

    def test_parse_amount_rejects_garbage(self):
        with self.assertRaises(click.BadParameter):
            parse_amount("lots", "'--principal'")

    def test_build_contract(self):
        contract = build_contract_from_options(
            "12k", "6.5%", "p.a.", "Balloon", "3", "2024-01-31", "2026-01-31",
            ("2024-06-01:1k", "2024-03-01:250"),
        )
        self.assertEqual(contract.principal, Decimal("12000"))
        self.assertEqual(contract.interest_rate, Decimal("6.5"))
        self.assertIs(contract.interest_kind, InterestKind.PERCENT_PER_ANNUM)
        self.assertIs(contract.amortization_kind, AmortizationKind.BALLOON)
        self.assertEqual(contract.payment_frequency_months, 3)
        self.assertEqual(contract.start_date, date(2024, 1, 31))
        self.assertEqual(len(contract.extra_repayments), 2)
        self.assertEqual(contract.extra_repayments[0].amount, Decimal("1000"))

    def test_parse_scenario(self):
        contract = parse_scenario("-p 100k -r 4 -s 2025-01-01 -e 2035-01-01 --type linear -f 12")
        self.assertEqual(contract.principal, Decimal("100000"))
        self.assertIs(contract.amortization_kind, AmortizationKind.LINEAR)
        self.assertEqual(contract.payment_frequency_months, 12)


class CommandTests(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def invoke(self, *args):
        return self.runner.invoke(cli, list(args))

    def test_schedule_table(self):
        result = self.invoke("schedule", *FLAT)
        self.assertEqual(result.exit_code, 0, result.output)
        lines = result.output.splitlines()
        self.assertEqual(lines[0], "Period\tDate\tKind\tPayment\tInterest\tPrincipal\tBalance")
        self.assertEqual(lines[1], "1\t2024-02-01\tPlan\t1100.00\t100.00\t1000.00\t9000.00")
        self.assertIn("Payments in range  : 11000.00", result.output)

    def test_schedule_date_range(self):
        result = self.invoke("schedule", *FLAT, "--from", "2024-03-01", "--to", "2024-05-01")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertNotIn("2024-02-01", result.output)
        self.assertIn("Payments in range  : 3300.00", result.output)
        self.assertIn("Balance at end     : 6000.00", result.output)

    def test_schedule_shows_extra_repayments(self):
        result = self.invoke("schedule", *ANNUITY, "--extra", "2024-07-01:2000")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("6\t2024-07-01\tExtra\t2000.00\t0.00\t2000.00", result.output)

    def test_invalid_contract_names_option(self):
        result = self.invoke("schedule", *ANNUITY[:-1], "2024-01-01")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("'--end-date'", result.output)

    def test_bad_extra_format(self):
        result = self.invoke("schedule", *ANNUITY, "--extra", "2024-07-01")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("YYYY-MM-DD:AMOUNT", result.output)

    def test_non_positive_extra_repayment(self):
        result = self.invoke("schedule", *ANNUITY, "--extra", "2024-07-01:0")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("'--extra'", result.output)

    def test_json_and_csv_export(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("schedule", *FLAT, "--output", "plan.json")
            self.assertEqual(result.exit_code, 0, result.output)
            with open("plan.json", encoding="utf-8") as f:
                data = json.load(f)
            self.assertEqual(len(data["schedule"]), 10)
            self.assertEqual(data["schedule"][0]["kind"], "plan")
            self.assertEqual(data["summary"]["total_interest"], 1000.0)

            result = self.invoke("schedule", *FLAT, "--output", "plan.csv")
            self.assertEqual(result.exit_code, 0, result.output)
            with open("plan.csv", newline="", encoding="utf-8") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0], ["Period", "Date", "Kind", "Payment", "Interest", "Principal", "Balance"])
            self.assertEqual(len(rows), 11)

            result = self.invoke("schedule", *FLAT, "--output", "plan.txt")
            self.assertEqual(result.exit_code, 2)

    def test_summary(self):
        result = self.invoke("summary", *ANNUITY)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Regular payment    : 1032.80", result.output)
        self.assertIn("Scheduled payments : 12", result.output)
        self.assertNotIn("Interest saved", result.output)

    def test_summary_with_extra_repayment(self):
        result = self.invoke("summary", *ANNUITY, "--extra", "2024-07-01:2000")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Extra repayments   : 2000.00", result.output)
        self.assertIn("Interest saved", result.output)
        self.assertIn("Total cost saved", result.output)

    def test_summary_export(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("summary", *FLAT, "--output", "summary.json")
            self.assertEqual(result.exit_code, 0, result.output)
            with open("summary.json", encoding="utf-8") as f:
                data = json.load(f)
            self.assertEqual(data["summary"]["scheduled_payments"], 10)

    def test_balance(self):
        result = self.invoke("balance", *FLAT, "--as-of", "2024-04-01")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Outstanding balance on 2024-04-01: 7000.00", result.output)
        self.assertIn("30.00 %", result.output)

    def test_balance_manual(self):
        result = self.invoke(
            "balance", *FLAT, "--as-of", "2024-04-01", "--manual", "--extra", "2024-02-15:500"
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Outstanding balance on 2024-04-01: 9500.00", result.output)

    def test_compare(self):
        result = self.invoke(
            "compare",
            "--scenario1", "-p 12k -r 6 -s 2024-01-01 -e 2025-01-01",
            "--scenario2", "-p 12k -r 6 -s 2024-01-01 -e 2025-01-01 --type linear",
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Comparison", result.output)
        self.assertIn("total_interest", result.output)
        self.assertIn("scheduled_payments", result.output)


if __name__ == "__main__":
    unittest.main()
