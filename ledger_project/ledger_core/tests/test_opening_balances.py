import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError

from ..exceptions import InvalidTransitionError, UnbalancedEntryError
from ..models import OpeningBalance
from ..services import opening_balance_summary, post_opening_balances
from .base import LedgerTestCase


class OpeningBalanceTests(LedgerTestCase):

    def add(self, account, debit="0.00", credit="0.00", year=2025):
        return OpeningBalance.objects.create(
            company=self.company,
            fiscal_year=year,
            account=account,
            opening_date=datetime.date(year, 1, 1),
            debit=Decimal(debit),
            credit=Decimal(credit),
        )

    def test_one_cent_difference_blocks_posting(self):
        self.add(self.bank_ledger, debit="1000.00")
        self.add(self.accounts["3000"], credit="999.99")

        summary = opening_balance_summary(self.company, 2025)
        self.assertFalse(summary.is_balanced)
        self.assertEqual(summary.difference, Decimal("0.01"))

        with self.assertRaises(UnbalancedEntryError):
            post_opening_balances(self.company, 2025)
        self.assertFalse(OpeningBalance.objects.filter(is_posted=True).exists())

    def test_balanced_set_posts_once(self):
        self.add(self.bank_ledger, debit="1000.00")
        self.add(self.inventory, debit="500.00")
        self.add(self.accounts["3000"], credit="1500.00")
        self.add(self.ar)  # zero row is ignored

        posting = post_opening_balances(self.company, 2025, actor="accountant")

        self.assertEqual(posting.entry.entry_number, "OB-2025")
        self.assertEqual(posting.lines_count, 3)
        self.assertEqual(posting.total_debit, Decimal("1500.00"))
        self.assertEqual(self.balance_of(self.bank_ledger), Decimal("1000.00"))

        summary = opening_balance_summary(self.company, 2025)
        self.assertTrue(summary.is_posted)
        self.assertEqual(summary.accounts_with_balance, 3)

        with self.assertRaises(InvalidTransitionError):
            post_opening_balances(self.company, 2025)

    def test_empty_year_cannot_be_posted(self):
        with self.assertRaises(UnbalancedEntryError):
            post_opening_balances(self.company, 2030)

    def test_row_is_either_debit_or_credit(self):
        with self.assertRaises(ValidationError):
            self.add(self.bank_ledger, debit="10.00", credit="10.00")

    def test_posted_rows_are_frozen(self):
        row = self.add(self.bank_ledger, debit="10.00")
        self.add(self.accounts["3000"], credit="10.00")
        post_opening_balances(self.company, 2025)

        row.refresh_from_db()
        row.debit = Decimal("20.00")
        with self.assertRaises(ValidationError):
            row.save()
