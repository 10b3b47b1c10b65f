"""
Best-effort posting of business documents.

The business document and its stock/balance effects are authoritative and
commit together; the journal entry is derived. Each entry is posted inside
its own savepoint, so a missing account or an invalid rule leaves the
document saved with posting_status "skipped"/"failed" and a PostingResult
the caller can act on. repost_document() retries once fixed.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction

from ..exceptions import (AlreadyPostedDifferentPayload, InvalidAccountError,
                          InvalidAmountError, InvalidQuantityError,
                          InvalidTransitionError,
                          MissingConfigurationError, UnbalancedEntryError)
from ..models import (Advance, Bill, DeliveryNote, DocumentReturn, Invoice,
                      Payment, PayrollPeriod, PurchaseOrder)
from . import costing, rules
from .allocation import apply
from .journal import post_journal_entry, reverse_journal_entry
from .results import PostingResult

logger = logging.getLogger(__name__)

# Raised by rules/engine for entries that should not exist as computed;
# ValidationError covers model checks on the entry and its lines
RULE_FAILURES = (
    UnbalancedEntryError,
    InvalidAccountError,
    InvalidAmountError,
    AlreadyPostedDifferentPayload,
    ValidationError,
)


@dataclass
class SaleInvoicePosting:
    invoice: Invoice
    revenue: PostingResult
    cogs: Optional[PostingResult] = None


def post_best_effort(document, build_draft, *, actor="", on_result=None):
    """
    Build and post one entry for `document`, never raising for
    configuration or rule problems.

    Returns a PostingResult; `on_result` (default document.record_posting)
    stores it on the document.
    """
    label = f"{type(document).__name__} {getattr(document, 'pk', '')}"
    try:
        with transaction.atomic():
            draft = build_draft()
            if draft is None:
                result = PostingResult.skipped("Nothing to post")
            else:
                result = PostingResult.posted(
                    post_journal_entry(document.company, draft, actor=actor)
                )
    except MissingConfigurationError as exc:
        logger.warning(
            "Posting skipped for %s: %s", label, exc,
            extra={"company": document.company_id, "setting": exc.setting},
        )
        result = PostingResult.skipped(str(exc), error=exc)
    except RULE_FAILURES as exc:
        logger.error(
            "Posting failed for %s: %s", label, exc,
            extra={"company": document.company_id},
        )
        result = PostingResult.failed(exc)

    recorder = on_result or getattr(document, "record_posting", None)
    if recorder is not None:
        recorder(result)
    return result


def reverse_best_effort(entry, *, actor="", description=""):
    """Compensation step: reverse a posted entry, reporting instead of raising."""
    try:
        with transaction.atomic():
            reversal = reverse_journal_entry(entry, actor=actor, description=description)
    except RULE_FAILURES as exc:
        logger.error("Reversal of %s failed: %s", entry.entry_number, exc)
        return PostingResult.failed(exc)
    return PostingResult.posted(reversal)


def _require_unposted(document):
    if document.posting_status == "posted":
        raise InvalidTransitionError("posted", "posted", f"{document} is already posted")


# ----------------------------
# Sales
# ----------------------------
def post_sale_invoice(invoice, *, actor="") -> SaleInvoicePosting:
    """
    Finalize a sale invoice: take its stock out, settle it if paid at
    creation, then post revenue and (for stocked lines) COGS entries.
    """
    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if invoice.is_cancelled:
            raise InvalidTransitionError("cancelled", "posted")
        if invoice.posting_status != "pending":
            raise InvalidTransitionError(
                invoice.posting_status, "posted",
                f"{invoice} was already processed; use repost_document",
            )

        lines = list(invoice.lines.select_related("item", "account"))
        invoice.recalc_totals()
        if not lines or invoice.original_amount <= 0:
            raise InvalidAmountError(invoice.original_amount, f"{invoice} has nothing to bill")
        invoice.save()

        stocked = [line for line in lines if line.consumes_stock]
        for line in stocked:
            out = costing.consume(
                line.item,
                line.quantity,
                movement_date=invoice.date,
                source_type=invoice.source_type,
                source_id=invoice.pk,
                reference=f"Invoice {invoice.document_number}",
            )
            line.unit_cost = out.unit_cost
            line.save(update_fields=["unit_cost"])

        if invoice.settled_on_creation:
            invoice = apply(invoice, invoice.original_amount)

        revenue = post_best_effort(
            invoice, lambda: rules.sale_invoice_entry(invoice, lines), actor=actor
        )
        cogs = None
        if stocked:
            cogs = post_best_effort(
                invoice,
                lambda: rules.cogs_entry(
                    invoice, stocked, entry_number=f"{invoice.document_number}-COGS"
                ),
                actor=actor,
                on_result=invoice.record_cogs_posting,
            )

    return SaleInvoicePosting(invoice, revenue, cogs)


# ----------------------------
# Purchases
# ----------------------------
def post_bill(bill, *, actor="") -> PostingResult:
    """
    Finalize a supplier invoice. Stock lines are received (revising the
    average cost) before the journal is posted.
    """
    with transaction.atomic():
        bill = Bill.objects.select_for_update().get(pk=bill.pk)
        if bill.is_cancelled:
            raise InvalidTransitionError("cancelled", "posted")
        if bill.posting_status != "pending":
            raise InvalidTransitionError(
                bill.posting_status, "posted", f"{bill} was already processed"
            )

        lines = list(bill.lines.select_related("item", "account"))
        bill.recalc_totals()
        if not lines or bill.original_amount <= 0:
            raise InvalidAmountError(bill.original_amount, f"{bill} has nothing to post")
        bill.save()

        for line in lines:
            if line.receives_stock:
                costing.receive(
                    line.item,
                    line.quantity,
                    line.unit_cost,
                    movement_date=bill.date,
                    source_type=bill.source_type,
                    source_id=bill.pk,
                    reference=f"Bill {bill.document_number}",
                )

        return post_best_effort(bill, lambda: rules.bill_entry(bill, lines), actor=actor)


def receive_purchase_order(order, *, received_date=None, actor="") -> PurchaseOrder:
    """approved → received: every line enters stock, then the receipt is booked."""
    with transaction.atomic():
        order = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        order.check_transition("received")
        lines = list(order.lines.select_related("item"))
        if not lines:
            raise InvalidAmountError(0, f"{order} has no lines to receive")

        order.received_date = received_date or order.received_date or order.order_date
        for line in lines:
            costing.receive(
                line.item,
                line.quantity,
                line.unit_cost,
                movement_date=order.received_date,
                source_type=order.source_type,
                source_id=order.pk,
                reference=f"PO {order.document_number}",
            )
        order.status = "received"
        order.save()

        post_best_effort(
            order, lambda: rules.purchase_receipt_entry(order, lines), actor=actor
        )
    return order


# ----------------------------
# Money in / money out
# ----------------------------
def post_advance(advance, *, actor="") -> PostingResult:
    """Book a customer/supplier advance; skipped if the party lacks an advance account."""
    advance = Advance.objects.get(pk=advance.pk)
    _require_unposted(advance)
    return post_best_effort(advance, lambda: rules.advance_entry(advance), actor=actor)


def post_advance_application(allocation, *, actor="") -> PostingResult:
    return post_best_effort(
        allocation, lambda: rules.advance_application_entry(allocation), actor=actor
    )


def post_payment(payment, *, actor="") -> PostingResult:
    """Book a customer receipt or supplier payment."""
    payment = Payment.objects.get(pk=payment.pk)
    _require_unposted(payment)
    return post_best_effort(payment, lambda: rules.payment_entry(payment), actor=actor)


# ----------------------------
# Stock leaving on a delivery note
# ----------------------------
def post_delivery_note(note, *, actor="") -> DeliveryNote:
    """draft → posted: stock leaves at the current average cost; COGS is booked."""
    with transaction.atomic():
        note = DeliveryNote.objects.select_for_update().get(pk=note.pk)
        note.check_transition("posted")
        lines = list(note.lines.select_related("item"))
        if not lines:
            raise InvalidQuantityError(0, f"{note} has no lines to deliver")

        stocked = []
        for line in lines:
            if not line.item.is_inventory:
                continue
            out = costing.consume(
                line.item,
                line.quantity,
                movement_date=note.date,
                source_type=note.source_type,
                source_id=note.pk,
                reference=f"DN {note.document_number}",
            )
            line.unit_cost = out.unit_cost
            line.save(update_fields=["unit_cost"])
            stocked.append(line)

        note.status = "posted"
        note.save()

        post_best_effort(
            note,
            lambda: rules.cogs_entry(
                note, stocked, entry_number=f"{note.document_number}-COGS"
            ),
            actor=actor,
        )
    return note


# ----------------------------
# Payroll
# ----------------------------
def post_payroll(period, *, actor="") -> PostingResult:
    """
    Book a closed/paid payroll period.

    gross != deductions + net is fatal (UnbalancedEntryError is raised);
    missing accounts only skip the entry.
    """
    period = PayrollPeriod.objects.get(pk=period.pk)
    if not period.is_postable:
        raise InvalidTransitionError(
            period.status, "posted", "Only closed or paid payroll periods can be posted"
        )
    _require_unposted(period)
    rules.check_payroll_totals(period)
    return post_best_effort(period, lambda: rules.payroll_entry(period), actor=actor)


# ----------------------------
# Retry
# ----------------------------
def _retry_cogs(invoice, actor):
    stocked = [
        line for line in invoice.lines.select_related("item")
        if line.consumes_stock and line.unit_cost is not None
    ]
    if not stocked or invoice.cogs_posting_status == "posted":
        return None
    return post_best_effort(
        invoice,
        lambda: rules.cogs_entry(
            invoice, stocked, entry_number=f"{invoice.document_number}-COGS"
        ),
        actor=actor,
        on_result=invoice.record_cogs_posting,
    )


def repost_document(document, *, actor=""):
    """
    Retry the journal side of a document whose posting was skipped or
    failed. Business effects (stock, balances) are not repeated.
    """
    document = type(document).objects.get(pk=document.pk)
    if document.posting_status == "pending":
        raise InvalidTransitionError(
            "pending", "posted", f"{document} has not been processed yet"
        )

    if isinstance(document, Invoice):
        revenue = None
        if document.posting_status != "posted":
            lines = list(document.lines.select_related("item", "account"))
            revenue = post_best_effort(
                document, lambda: rules.sale_invoice_entry(document, lines), actor=actor
            )
        return SaleInvoicePosting(document, revenue, _retry_cogs(document, actor))

    if document.posting_status == "posted":
        return PostingResult.posted(document.journal_entry)

    builders = {
        Bill: lambda: rules.bill_entry(
            document, list(document.lines.select_related("item", "account"))
        ),
        Advance: lambda: rules.advance_entry(document),
        Payment: lambda: rules.payment_entry(document),
        PayrollPeriod: lambda: rules.payroll_entry(document),
        PurchaseOrder: lambda: rules.purchase_receipt_entry(
            document, list(document.lines.select_related("item"))
        ),
        DeliveryNote: lambda: rules.cogs_entry(
            document,
            [line for line in document.lines.select_related("item")
             if line.unit_cost is not None],
            entry_number=f"{document.document_number}-COGS",
        ),
        DocumentReturn: lambda: rules.return_entry(document),
    }
    build = builders.get(type(document))
    if build is None:
        raise ValueError(f"{type(document).__name__} has no posting rule")
    return post_best_effort(document, build, actor=actor)
