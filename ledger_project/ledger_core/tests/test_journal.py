from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import override_settings

from ..exceptions import (AlreadyPostedDifferentPayload, InvalidAccountError,
                          InvalidAmountError, InvalidTransitionError,
                          UnbalancedEntryError)
from ..models import Account, AuditLog, JournalEntry, JournalLine
from ..services import (EntryDraft, LineDraft, post_journal_entry,
                        reverse_journal_entry)
from .base import LedgerTestCase


class JournalPostingTests(LedgerTestCase):

    def draft(self, debit="100.00", credit="100.00", **kwargs):
        return EntryDraft(
            entry_date=self.today,
            lines=[
                LineDraft(account=self.cash, debit=Decimal(debit)),
                LineDraft(account=self.sales, credit=Decimal(credit)),
            ],
            description="Cash sale",
            **kwargs,
        )

    """ Test Balanced Entry """
    def test_balanced_entry_posts_successfully(self):
        entry = post_journal_entry(self.company, self.draft(), actor="alice")

        entry.refresh_from_db()
        self.assertEqual(entry.status, "posted")
        self.assertEqual(entry.total_debit, Decimal("100.00"))
        self.assertEqual(entry.total_credit, Decimal("100.00"))
        self.assertEqual(entry.created_by, "alice")
        # every line is marked posted and inherits the entry description
        self.assertEqual(entry.lines.filter(is_posted=True).count(), 2)
        self.assertEqual(entry.lines.first().description, "Cash sale")

    def test_totals_with_cents_are_stored_to_the_cent(self):
        draft = EntryDraft(
            entry_date=self.today,
            lines=[
                LineDraft(account=self.cash, debit=Decimal("0.10")),
                LineDraft(account=self.cash, debit=Decimal("0.20")),
                LineDraft(account=self.cash, debit=Decimal("53.07")),
                LineDraft(account=self.sales, credit=Decimal("53.37")),
            ],
        )

        entry = post_journal_entry(self.company, draft)

        entry.refresh_from_db()
        self.assertEqual(entry.total_debit, Decimal("53.37"))
        self.assertEqual(entry.total_credit, Decimal("53.37"))
        self.assertEqual(entry.compute_totals(), (Decimal("53.37"), Decimal("53.37")))
        self.assertTrue(entry.is_balanced())

    def test_entry_numbers_come_from_company_sequence(self):
        first = post_journal_entry(self.company, self.draft())
        second = post_journal_entry(self.company, self.draft())
        self.assertEqual(first.entry_number, "JE-000001")
        self.assertEqual(second.entry_number, "JE-000002")

    @override_settings(LEDGER_ENTRY_NUMBER_PREFIX="GJ")
    def test_entry_number_prefix_is_configurable(self):
        entry = post_journal_entry(self.company, self.draft())
        self.assertTrue(entry.entry_number.startswith("GJ-"))

    """ Test Unbalanced Entry """
    def test_one_cent_difference_is_rejected(self):
        with self.assertRaises(UnbalancedEntryError) as ctx:
            post_journal_entry(self.company, self.draft(debit="100.00", credit="99.99"))

        self.assertEqual(ctx.exception.total_debit, Decimal("100.00"))
        self.assertEqual(ctx.exception.total_credit, Decimal("99.99"))
        # nothing persisted
        self.assertFalse(JournalEntry.objects.exists())
        self.assertFalse(JournalLine.objects.exists())

    def test_empty_entry_is_rejected(self):
        with self.assertRaises(UnbalancedEntryError):
            post_journal_entry(self.company, EntryDraft(entry_date=self.today))

    def test_line_with_both_sides_is_rejected(self):
        draft = EntryDraft(
            entry_date=self.today,
            lines=[
                LineDraft(account=self.cash, debit=Decimal("5"), credit=Decimal("5")),
            ],
        )
        with self.assertRaises(InvalidAmountError):
            post_journal_entry(self.company, draft)

    """ Test Invalid Accounts """
    def test_inactive_account_is_rejected(self):
        self.sales.is_active = False
        self.sales.save()

        with self.assertRaises(InvalidAccountError) as ctx:
            post_journal_entry(self.company, self.draft())
        self.assertEqual(ctx.exception.account, self.sales)
        self.assertFalse(JournalEntry.objects.exists())

    def test_header_account_is_rejected(self):
        header = self.accounts["1000"]
        draft = EntryDraft(
            entry_date=self.today,
            lines=[
                LineDraft(account=header, debit=Decimal("10")),
                LineDraft(account=self.sales, credit=Decimal("10")),
            ],
        )
        with self.assertRaises(InvalidAccountError):
            post_journal_entry(self.company, draft)

    def test_non_leaf_account_is_rejected(self):
        # give Sales a child so it becomes a grouping account
        Account.objects.create(
            company=self.company, code="4010", name="Sales - services",
            ac_type="income", parent=self.sales,
        )
        self.assertFalse(self.sales.can_post)
        with self.assertRaises(InvalidAccountError):
            post_journal_entry(self.company, self.draft())

    def test_other_company_account_is_rejected(self):
        from ..models import Company
        from ..services.chart import seed_chart

        other = Company.objects.create(name="Other", slug="other")
        foreign_cash = seed_chart(other)["1100"]
        draft = EntryDraft(
            entry_date=self.today,
            lines=[
                LineDraft(account=foreign_cash, debit=Decimal("10")),
                LineDraft(account=self.sales, credit=Decimal("10")),
            ],
        )
        with self.assertRaises(InvalidAccountError):
            post_journal_entry(self.company, draft)

    """ Test for Idempotency """
    def test_reposting_identical_draft_returns_same_entry(self):
        first = post_journal_entry(self.company, self.draft(entry_number="INV-9"))
        again = post_journal_entry(self.company, self.draft(entry_number="INV-9"))

        self.assertEqual(first.pk, again.pk)
        self.assertEqual(JournalEntry.objects.count(), 1)
        self.assertEqual(JournalLine.objects.count(), 2)

    def test_reposting_different_payload_raises(self):
        post_journal_entry(self.company, self.draft(entry_number="INV-9"))

        with self.assertRaises(AlreadyPostedDifferentPayload):
            post_journal_entry(
                self.company,
                self.draft(debit="120.00", credit="120.00", entry_number="INV-9"),
            )

    """ Test Immutability """
    def test_posted_entry_cannot_be_modified_or_deleted(self):
        entry = post_journal_entry(self.company, self.draft())

        entry.description = "changed"
        with self.assertRaises(ValidationError):
            entry.save()
        with self.assertRaises(ValidationError):
            entry.delete()
        # lines cannot be added after posting
        with self.assertRaises(ValidationError):
            JournalLine.objects.create(
                company=self.company, journal=entry, line_number=3,
                account=self.cash, debit_amount=Decimal("1.00"),
            )

    def test_account_with_history_cannot_be_deactivated(self):
        post_journal_entry(self.company, self.draft())
        self.cash.is_active = False
        with self.assertRaises(ValidationError):
            self.cash.save()

    def test_posting_writes_audit_log(self):
        entry = post_journal_entry(self.company, self.draft(), actor="bob")
        log = AuditLog.objects.get(object_type="JournalEntry", object_id=str(entry.pk))
        self.assertEqual(log.action, "post")
        self.assertEqual(log.actor, "bob")


class JournalReversalTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.entry = post_journal_entry(
            self.company,
            EntryDraft(
                entry_date=self.today,
                lines=[
                    LineDraft(account=self.cash, debit=Decimal("250.00")),
                    LineDraft(account=self.sales, credit=Decimal("250.00")),
                ],
                entry_number="INV-50",
            ),
        )

    def test_reversal_mirrors_lines_and_nets_to_zero(self):
        reversal = reverse_journal_entry(self.entry)

        self.assertEqual(reversal.entry_number, "INV-50-REV")
        self.assertEqual(reversal.reversal_of, self.entry)
        self.assertEqual(self.balance_of(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance_of(self.sales), Decimal("0.00"))

    def test_entry_can_only_be_reversed_once(self):
        reverse_journal_entry(self.entry)
        with self.assertRaises(InvalidTransitionError):
            reverse_journal_entry(self.entry)
