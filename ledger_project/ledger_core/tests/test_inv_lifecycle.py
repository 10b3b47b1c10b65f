from decimal import Decimal

from ..exceptions import (InsufficientStockError, InvalidAmountError,
                          InvalidTransitionError, OverApplicationError)
from ..models import AccountingSettings, DocumentReturn, Invoice, StockMovement
from ..services import (DocumentRef, post_sale_invoice, receive, register_return,
                        repost_document, transition_status)
from .base import LedgerTestCase


class SaleInvoicePostingTests(LedgerTestCase):

    def test_invoice_paid_by_transfer_posts_bank_sales_and_tax(self):
        invoice = self.make_invoice(payment_method="transfer", bank_account=self.bank)

        report = post_sale_invoice(invoice, actor="clerk")

        invoice.refresh_from_db()
        self.assertEqual(invoice.original_amount, Decimal("1180.00"))
        self.assertEqual(invoice.balance_amount, Decimal("0.00"))
        self.assertEqual(invoice.status, "paid")
        self.assertEqual(invoice.posting_status, "posted")

        entry = report.revenue.entry
        self.assertEqual(entry.entry_number, "INV-1")
        lines = {
            line.account.code: (line.debit_amount, line.credit_amount)
            for line in entry.lines.select_related("account")
        }
        self.assertEqual(lines, {
            "1110": (Decimal("1180.00"), Decimal("0.00")),
            "4000": (Decimal("0.00"), Decimal("1000.00")),
            "2200": (Decimal("0.00"), Decimal("180.00")),
        })
        # no stocked lines, no COGS entry
        self.assertIsNone(report.cogs)

    def test_invoice_total_with_cents_posts(self):
        # 45.00 + 8.10 tax
        invoice = self.make_invoice(
            lines=[("Setup", "27.00", "0.18"), ("Support", "18.00", "0.18")]
        )

        report = post_sale_invoice(invoice)

        self.assertTrue(report.revenue.is_posted)
        self.assertEqual(report.revenue.entry.total_debit, Decimal("53.10"))
        self.assertEqual(report.revenue.entry.total_credit, Decimal("53.10"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.posting_status, "posted")
        self.assertEqual(invoice.balance_amount, Decimal("53.10"))
        self.assertEqual(self.balance_of(self.ar), Decimal("53.10"))
        self.assertEqual(self.balance_of(self.sales_tax), Decimal("-8.10"))

    def test_credit_invoice_debits_receivables(self):
        invoice = self.make_invoice()
        post_sale_invoice(invoice)

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, "pending")
        self.assertEqual(invoice.balance_amount, Decimal("1180.00"))
        self.assertEqual(self.balance_of(self.ar), Decimal("1180.00"))

    def test_stocked_lines_consume_inventory_and_post_cogs(self):
        receive(self.item, Decimal("10"), Decimal("4"), movement_date=self.today)
        invoice = self.make_invoice(
            lines=[("Widgets", "9.00", "0")], item=self.item, quantity=3
        )

        report = post_sale_invoice(invoice)

        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal("7.0000"))
        line = invoice.lines.get()
        self.assertEqual(line.unit_cost, Decimal("4.000000"))

        self.assertTrue(report.cogs.is_posted)
        self.assertEqual(report.cogs.entry.entry_number, "INV-1-COGS")
        self.assertEqual(self.balance_of(self.cogs), Decimal("12.00"))
        self.assertEqual(self.balance_of(self.inventory), Decimal("-12.00"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.cogs_posting_status, "posted")

    def test_insufficient_stock_rolls_back_the_invoice_posting(self):
        invoice = self.make_invoice(
            lines=[("Widgets", "9.00", "0")], item=self.item, quantity=3
        )
        with self.assertRaises(InsufficientStockError):
            post_sale_invoice(invoice)

        invoice.refresh_from_db()
        self.assertEqual(invoice.posting_status, "pending")
        self.assertFalse(StockMovement.objects.exists())

    def test_invoice_without_lines_is_rejected(self):
        invoice = self.make_invoice(lines=[])
        with self.assertRaises(InvalidAmountError):
            post_sale_invoice(invoice)

    def test_invoice_is_processed_once(self):
        invoice = self.make_invoice()
        post_sale_invoice(invoice)
        with self.assertRaises(InvalidTransitionError):
            post_sale_invoice(invoice)

    def test_missing_tax_account_skips_entry_but_keeps_invoice(self):
        settings = AccountingSettings.for_company(self.company)
        settings.sales_tax_account = None
        settings.save()

        invoice = self.make_invoice(payment_method="transfer", bank_account=self.bank)
        report = post_sale_invoice(invoice)

        self.assertTrue(report.revenue.is_skipped)
        self.assertEqual(report.revenue.error.setting, "sales_tax_account")
        invoice.refresh_from_db()
        self.assertEqual(invoice.posting_status, "skipped")
        self.assertIn("sales_tax_account", invoice.posting_message)
        # business effects stand: settled in full
        self.assertEqual(invoice.status, "paid")

        settings.sales_tax_account = self.sales_tax
        settings.save()
        retry = repost_document(invoice)
        self.assertTrue(retry.revenue.is_posted)
        invoice.refresh_from_db()
        self.assertEqual(invoice.posting_status, "posted")


class SaleInvoiceCancellationTests(LedgerTestCase):

    def test_cancel_returns_stock_and_reverses_entries(self):
        receive(self.item, Decimal("10"), Decimal("4"), movement_date=self.today)
        invoice = self.make_invoice(
            lines=[("Widgets", "9.00", "0")], item=self.item, quantity=3
        )
        post_sale_invoice(invoice)

        transition_status(self.company, DocumentRef("invoice", invoice.pk), "cancelled")

        invoice.refresh_from_db()
        self.item.refresh_from_db()
        self.assertEqual(invoice.status, "cancelled")
        self.assertEqual(invoice.balance_amount, Decimal("0.00"))
        self.assertEqual(self.item.current_stock, Decimal("10.0000"))
        self.assertEqual(self.item.average_cost, Decimal("4.000000"))
        # revenue and COGS both netted out
        for account in (self.ar, self.sales, self.cogs, self.inventory):
            self.assertEqual(self.balance_of(account), Decimal("0.00"))

    def test_paid_invoice_cannot_be_cancelled(self):
        invoice = self.make_invoice(payment_method="cash")
        post_sale_invoice(invoice)

        with self.assertRaises(InvalidTransitionError):
            transition_status(self.company, DocumentRef("invoice", invoice.pk), "cancelled")


class ReturnTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.invoice = self.make_invoice()
        post_sale_invoice(self.invoice)

    def test_return_reduces_invoice_and_posts(self):
        doc_return = register_return(
            self.company, document=self.invoice, amount=Decimal("180.00"),
            date=self.today, concept="Damaged",
        )

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.original_amount, Decimal("1000.00"))
        self.assertEqual(self.invoice.balance_amount, Decimal("1000.00"))
        self.assertEqual(self.invoice.status, "pending")

        self.assertTrue(doc_return.document_number.startswith("DEV-"))
        self.assertEqual(doc_return.posting_status, "posted")
        entry = doc_return.journal_entry
        self.assertEqual(entry.entry_number, doc_return.document_number)
        self.assertEqual(self.balance_of(self.sales), Decimal("-820.00"))
        self.assertEqual(self.balance_of(self.accounts["4100"]), Decimal("-180.00"))
        self.assertIn("Damaged", entry.reference)

    def test_return_covering_the_balance_settles_invoice(self):
        register_return(self.company, document=self.invoice, amount=Decimal("1180.00"))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, "paid")
        self.assertEqual(self.invoice.balance_amount, Decimal("0.00"))

    def test_return_larger_than_balance_is_rejected(self):
        with self.assertRaises(OverApplicationError):
            register_return(self.company, document=self.invoice, amount=Decimal("1180.01"))

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.balance_amount, Decimal("1180.00"))
        self.assertFalse(DocumentReturn.objects.exists())

    def test_non_positive_return_is_rejected(self):
        with self.assertRaises(InvalidAmountError):
            register_return(self.company, document=self.invoice, amount=Decimal("0"))

    def test_return_on_other_company_invoice_is_not_found(self):
        from ..models import Company

        other = Company.objects.create(name="Other", slug="other")
        with self.assertRaises(Invoice.DoesNotExist):
            register_return(other, document=self.invoice, amount=Decimal("1.00"))
