import datetime
from decimal import Decimal

from ..exceptions import InvalidTransitionError, UnbalancedEntryError
from ..models import AccountingSettings, PayrollPeriod
from ..services import DocumentRef, post_payroll, transition_status
from .base import LedgerTestCase


class PayrollPostingTests(LedgerTestCase):

    def make_period(self, gross="10000.00", deductions="1500.00", net="8500.00"):
        return PayrollPeriod.objects.create(
            company=self.company,
            name="September",
            start_date=datetime.date(2025, 9, 1),
            end_date=datetime.date(2025, 9, 30),
            payment_date=datetime.date(2025, 10, 1),
            total_gross=Decimal(gross),
            total_deductions=Decimal(deductions),
            total_net=Decimal(net),
        )

    def test_closing_period_posts_payroll(self):
        period = self.make_period()

        period = transition_status(self.company, DocumentRef("payroll_period", period.pk), "closed")

        self.assertEqual(period.status, "closed")
        self.assertEqual(period.posting_status, "posted")
        self.assertEqual(period.journal_entry.entry_number, f"NOM-20251001-{period.pk}")
        self.assertEqual(self.balance_of(self.accounts["6000"]), Decimal("10000.00"))
        self.assertEqual(self.balance_of(self.accounts["2400"]), Decimal("-1500.00"))
        self.assertEqual(self.balance_of(self.accounts["2500"]), Decimal("-8500.00"))

    def test_paying_a_closed_period_does_not_post_again(self):
        period = self.make_period()
        ref = DocumentRef("payroll_period", period.pk)
        closed = transition_status(self.company, ref, "closed")
        paid = transition_status(self.company, ref, "paid")

        self.assertEqual(paid.status, "paid")
        self.assertEqual(paid.journal_entry, closed.journal_entry)

    def test_totals_mismatch_blocks_the_transition(self):
        period = self.make_period(net="8400.00")

        with self.assertRaises(UnbalancedEntryError):
            transition_status(self.company, DocumentRef("payroll_period", period.pk), "closed")

        period.refresh_from_db()
        self.assertEqual(period.status, "open")
        self.assertEqual(period.posting_status, "pending")

    def test_open_period_is_not_postable(self):
        period = self.make_period()
        with self.assertRaises(InvalidTransitionError):
            post_payroll(period)

    def test_missing_payroll_accounts_skip_the_entry(self):
        settings = AccountingSettings.for_company(self.company)
        settings.salaries_expense_account = None
        settings.save()
        period = self.make_period()

        period = transition_status(self.company, DocumentRef("payroll_period", period.pk), "closed")

        # the period still closes; the entry can be re-posted later
        self.assertEqual(period.status, "closed")
        self.assertEqual(period.posting_status, "skipped")
        self.assertIsNone(period.journal_entry)
