import os
import tempfile
import unittest
from datetime import date
from decimal import Decimal

from loan_plan.data_models import (
    AmortizationKind,
    ExtraRepayment,
    InterestKind,
    LoanContract,
    LoanDirection,
    LoanRecord,
    LoanStatus,
)
from loan_plan_web.loan_store import LoanStore

CONTRACT = LoanContract(
    principal=Decimal("12000.50"),
    interest_rate=Decimal("6.25"),
    interest_kind=InterestKind.PERCENT_PER_ANNUM,
    amortization_kind=AmortizationKind.LINEAR,
    payment_frequency_months=3,
    start_date=date(2024, 1, 1),
    end_date=date(2026, 1, 1),
    extra_repayments=(ExtraRepayment(date(2024, 8, 1), Decimal("750.25")),),
)


class LoanStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = LoanStore(f"sqlite:///{os.path.join(self._tmp.name, 'loans.sqlite3')}")

    def tearDown(self):
        self.store._engine.dispose()
        self._tmp.cleanup()

    def add(self, loan_id="loan-1", **overrides):
        values = dict(id=loan_id, direction=LoanDirection.TAKEN, counterparty="Bank", contract=CONTRACT)
        values.update(overrides)
        return self.store.add_loan(LoanRecord(**values))

    def test_round_trip_keeps_exact_amounts(self):
        self.add(contract_info="Mortgage 42")
        record = self.store.get_loan("loan-1")
        self.assertEqual(record.contract, CONTRACT)
        self.assertEqual(record.contract_info, "Mortgage 42")
        self.assertIs(record.status, LoanStatus.ACTIVE)
        self.assertTrue(record.auto_payment)

    def test_unknown_loan(self):
        self.assertIsNone(self.store.get_loan("missing"))
        self.assertIsNone(self.store.update_loan("missing", status=LoanStatus.CLOSED))
        self.assertIsNone(self.store.add_repayment("missing", ExtraRepayment(date(2024, 5, 1), Decimal("1"))))
        self.assertFalse(self.store.remove_loan("missing"))

    def test_list_in_registration_order(self):
        self.add("a")
        self.add("b", direction=LoanDirection.GIVEN, counterparty="Friend")
        self.assertEqual([r.id for r in self.store.list_loans()], ["a", "b"])

    def test_add_repayment_keeps_date_order(self):
        self.add()
        record = self.store.add_repayment("loan-1", ExtraRepayment(date(2024, 3, 1), Decimal("100")), note="bonus")
        self.assertEqual(
            [extra.date for extra in record.contract.extra_repayments],
            [date(2024, 3, 1), date(2024, 8, 1)],
        )

    def test_update_and_remove(self):
        self.add()
        record = self.store.update_loan("loan-1", status=LoanStatus.CLOSED, auto_payment=False)
        self.assertIs(record.status, LoanStatus.CLOSED)
        self.assertFalse(record.auto_payment)
        self.assertTrue(self.store.remove_loan("loan-1"))
        self.assertEqual(self.store.list_loans(), [])


if __name__ == "__main__":
    unittest.main()
