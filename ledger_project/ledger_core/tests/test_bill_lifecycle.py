from decimal import Decimal
import datetime

from ..exceptions import InvalidTransitionError
from ..models import (Advance, Bill, BillLine, Payment, PurchaseOrder,
                      PurchaseOrderLine, StockMovement)
from ..services import (DocumentRef, allocate, post_advance, post_bill, post_payment,
                        register_return, transition_status)
from .base import LedgerTestCase


class BillLifecycleTests(LedgerTestCase):

    def make_bill(self, number="B-1", lines=()):
        """`lines` is a list of (item, account, quantity, unit_cost, tax_rate) tuples."""
        bill = Bill.objects.create(
            company=self.company,
            supplier=self.supplier,
            document_number=number,
            supplier_reference="SUP-778",
            date=self.today,
        )
        for item, account, qty, cost, rate in lines:
            BillLine.objects.create(
                company=self.company,
                bill=bill,
                item=item,
                account=account,
                description="Bill line",
                quantity=Decimal(qty),
                unit_cost=Decimal(cost),
                tax_rate=Decimal(rate),
            )
        return bill

    def test_bill_receives_stock_and_credits_payables(self):
        bill = self.make_bill(lines=[
            (self.item, None, "10", "5.00", "0"),
            (None, self.supplies, "1", "40.00", "0"),
        ])

        result = post_bill(bill)

        self.assertTrue(result.is_posted)
        self.assertEqual(result.entry.entry_number, "AP-B-1")
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal("10.0000"))
        self.assertEqual(self.item.average_cost, Decimal("5.000000"))
        self.assertEqual(self.balance_of(self.inventory), Decimal("50.00"))
        self.assertEqual(self.balance_of(self.supplies), Decimal("40.00"))
        self.assertEqual(self.balance_of(self.ap), Decimal("-90.00"))

        bill.refresh_from_db()
        self.assertEqual(bill.balance_amount, Decimal("90.00"))
        self.assertEqual(bill.status, "pending")

    def test_purchase_tax_is_folded_into_cost_without_tax_account(self):
        bill = self.make_bill(lines=[(None, self.supplies, "1", "100.00", "0.10")])
        post_bill(bill)

        self.assertEqual(self.balance_of(self.supplies), Decimal("110.00"))
        self.assertEqual(self.balance_of(self.ap), Decimal("-110.00"))

    def test_line_without_expense_account_skips_entry(self):
        bill = self.make_bill(lines=[(None, None, "1", "100.00", "0")])

        result = post_bill(bill)

        self.assertTrue(result.is_skipped)
        bill.refresh_from_db()
        self.assertEqual(bill.posting_status, "skipped")
        self.assertEqual(bill.original_amount, Decimal("100.00"))

    def test_supplier_payment_debits_payables_and_credits_bank(self):
        bill = self.make_bill(lines=[(None, self.supplies, "1", "90.00", "0")])
        post_bill(bill)
        payment = Payment.objects.create(
            company=self.company, direction="payment", supplier=self.supplier,
            document_number="P-1", date=self.today, bank_account=self.bank,
            original_amount=Decimal("90.00"),
        )

        result = post_payment(payment)
        allocate(payment, bill, Decimal("90.00"))

        self.assertEqual(result.entry.entry_number, "PMT-P-1")
        self.assertEqual(self.balance_of(self.ap), Decimal("0.00"))
        self.assertEqual(self.balance_of(self.bank_ledger), Decimal("-90.00"))
        bill.refresh_from_db()
        self.assertEqual(bill.status, "paid")

    def test_supplier_payment_without_bank_uses_default_ap_bank(self):
        payment = Payment.objects.create(
            company=self.company, direction="payment", supplier=self.supplier,
            document_number="P-2", date=self.today, original_amount=Decimal("15.00"),
        )
        result = post_payment(payment)

        self.assertTrue(result.is_posted)
        self.assertEqual(self.balance_of(self.accounts["1110"]), Decimal("-15.00"))

    def test_supplier_advance_applied_to_bill(self):
        bill = self.make_bill(lines=[(None, self.supplies, "1", "100.00", "0")])
        post_bill(bill)
        advance = Advance.objects.create(
            company=self.company, side="supplier", supplier=self.supplier,
            date=self.today, original_amount=Decimal("60.00"),
        )
        self.assertTrue(post_advance(advance).is_posted)

        result = allocate(advance, bill, Decimal("60.00"))

        self.assertTrue(result.posting.is_posted)
        # prepayment asset is cleared against payables
        self.assertEqual(self.balance_of(self.accounts["1500"]), Decimal("0.00"))
        self.assertEqual(self.balance_of(self.ap), Decimal("-40.00"))
        advance.refresh_from_db()
        self.assertEqual(advance.status, "applied")

    def test_purchase_return_reduces_bill(self):
        bill = self.make_bill(lines=[(None, self.supplies, "1", "100.00", "0")])
        post_bill(bill)

        doc_return = register_return(
            self.company, document=bill, amount=Decimal("30.00"), date=self.today
        )

        bill.refresh_from_db()
        self.assertEqual(bill.original_amount, Decimal("70.00"))
        self.assertEqual(bill.balance_amount, Decimal("70.00"))
        self.assertEqual(doc_return.side, "purchase")
        self.assertEqual(self.balance_of(self.accounts["5100"]), Decimal("30.00"))
        self.assertEqual(self.balance_of(self.supplies), Decimal("70.00"))

    def test_cancel_posted_bill_takes_stock_back_out(self):
        bill = self.make_bill(lines=[(self.item, None, "4", "5.00", "0")])
        post_bill(bill)

        transition_status(self.company, DocumentRef("ap_invoice", bill.pk), "cancelled")

        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal("0.0000"))
        self.assertEqual(self.balance_of(self.ap), Decimal("0.00"))
        self.assertEqual(self.balance_of(self.inventory), Decimal("0.00"))

    def test_cancel_bill_after_later_receipt_takes_stock_out_at_bill_cost(self):
        first = self.make_bill(lines=[(self.item, None, "4", "5.00", "0")])
        post_bill(first)
        later = self.make_bill("B-2", lines=[(self.item, None, "6", "10.00", "0")])
        post_bill(later)
        self.item.refresh_from_db()
        self.assertEqual(self.item.average_cost, Decimal("8.000000"))

        transition_status(self.company, DocumentRef("ap_invoice", first.pk), "cancelled")

        exit_movement = StockMovement.objects.get(movement_type="exit")
        self.assertEqual(exit_movement.unit_cost, Decimal("5.000000"))
        self.assertEqual(exit_movement.total_cost, Decimal("20.00"))
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal("6.0000"))
        # only the later receipt is left in the average
        self.assertEqual(self.item.average_cost, Decimal("10.000000"))
        # ledger and stock valuation agree
        self.assertEqual(self.balance_of(self.inventory), Decimal("60.00"))
        self.assertEqual(
            self.balance_of(self.inventory),
            (self.item.current_stock * self.item.average_cost).quantize(Decimal("0.01")),
        )


class PurchaseOrderTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.order = PurchaseOrder.objects.create(
            company=self.company, supplier=self.supplier,
            document_number="PO-7", order_date=self.today,
        )
        PurchaseOrderLine.objects.create(
            company=self.company, purchase_order=self.order, item=self.item,
            quantity=Decimal("100"), unit_cost=Decimal("10"),
        )
        PurchaseOrderLine.objects.create(
            company=self.company, purchase_order=self.order, item=self.item,
            quantity=Decimal("50"), unit_cost=Decimal("13"),
        )
        self.ref = DocumentRef("purchase_order", self.order.pk)

    def test_draft_order_cannot_be_received(self):
        with self.assertRaises(InvalidTransitionError):
            transition_status(self.company, self.ref, "received")
        self.assertFalse(StockMovement.objects.exists())

    def test_receiving_approved_order_brings_stock_in_and_books_it(self):
        transition_status(self.company, self.ref, "sent")
        transition_status(self.company, self.ref, "approved")
        order = transition_status(self.company, self.ref, "received")

        self.assertEqual(order.status, "received")
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal("150.0000"))
        self.assertEqual(self.item.average_cost, Decimal("11.000000"))
        movements = StockMovement.objects.filter(item=self.item)
        self.assertEqual(
            set(movements.values_list("reference", flat=True)), {"PO PO-7"}
        )

        order.refresh_from_db()
        self.assertEqual(order.posting_status, "posted")
        self.assertEqual(order.journal_entry.entry_number, "PO-7-REC")
        self.assertEqual(self.balance_of(self.inventory), Decimal("1650.00"))
        self.assertEqual(self.balance_of(self.ap), Decimal("-1650.00"))

    def test_received_order_is_final(self):
        transition_status(self.company, self.ref, "approved")
        transition_status(self.company, self.ref, "received")
        with self.assertRaises(InvalidTransitionError):
            transition_status(self.company, self.ref, "cancelled")

    def test_lines_are_frozen_once_order_leaves_draft(self):
        from django.core.exceptions import ValidationError

        transition_status(self.company, self.ref, "approved")
        self.order.refresh_from_db()
        with self.assertRaises(ValidationError):
            PurchaseOrderLine.objects.create(
                company=self.company, purchase_order=self.order, item=self.item,
                quantity=Decimal("1"), unit_cost=Decimal("1"),
            )

    def test_order_date_defaults_receipt_date(self):
        transition_status(self.company, self.ref, "approved")
        order = transition_status(self.company, self.ref, "received")
        self.assertEqual(order.received_date, self.today)
        self.assertIsInstance(order.received_date, datetime.date)
