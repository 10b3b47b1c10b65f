"""
Status transitions for every document with a lifecycle.

Transitions that carry side effects (receiving a purchase order, posting or
cancelling a delivery note, cancelling an invoice) run them in the same
transaction as the status change. Cancellation compensates earlier effects
explicitly: journal entries are reversed and stock comes back at the cost
captured when it left.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidTransitionError
from ..models import (Advance, Bill, DeliveryNote, Invoice, InvoiceLine, Payment,
                      PayrollPeriod, PurchaseOrder, RecurringSubscription)
from . import allocation, costing
from .audit_helper import log_action
from .posting import (post_delivery_note, post_payroll, post_sale_invoice,
                      receive_purchase_order, reverse_best_effort)
from .refs import resolve_document

logger = logging.getLogger(__name__)


def _log_transition(document, before, actor):
    log_action(
        action="transition",
        instance=document,
        actor=actor,
        changes={"status": [before, document.status]},
    )


# ----------------------------
# Compensation
# ----------------------------
def _reverse_entries(entries, actor, reason):
    results = []
    for entry in entries:
        if entry is None or entry.status != "posted":
            continue
        if hasattr(entry, "reversed_by"):
            continue
        results.append(reverse_best_effort(entry, actor=actor, description=reason))
    return results


def _return_stock(document, lines, reference):
    """Bring stock that left with `lines` back at each line's captured cost."""
    for line in lines:
        if line.unit_cost is None:
            continue
        costing.receive(
            line.item,
            line.quantity,
            line.unit_cost,
            movement_date=timezone.localdate(),
            source_type=f"{document.source_type}_cancel",
            source_id=document.pk,
            reference=reference,
        )


def _remove_stock(document, lines, reference):
    """Send received stock back out at the cost it came in with."""
    for line in lines:
        costing.reverse_receipt(
            line.item,
            line.quantity,
            line.unit_cost,
            movement_date=timezone.localdate(),
            source_type=f"{document.source_type}_cancel",
            source_id=document.pk,
            reference=reference,
        )


def cancel_document(document, *, actor=""):
    """
    Cancel an invoice, bill, advance or payment nothing was applied against.

    Stock effects are undone and posted entries reversed in the same
    transaction. An invoice that bills delivery notes cannot be cancelled:
    its notes are already "invoiced", which is final.
    """
    with transaction.atomic():
        locked = type(document).objects.select_for_update().get(pk=document.pk)
        if isinstance(locked, Invoice):
            billed = sorted(
                locked.lines.filter(delivery_note__isnull=False)
                .values_list("delivery_note__document_number", flat=True)
                .distinct()
            )
            if billed:
                raise InvalidTransitionError(
                    locked.status, "cancelled",
                    f"{locked} bills delivery notes {', '.join(billed)}; "
                    "register a return instead",
                )

        locked = allocation.cancel_locked(locked, actor=actor)
        reason = f"Cancellation of {locked}"

        if isinstance(locked, Invoice):
            stocked = [
                line for line in locked.lines.select_related("item")
                if line.consumes_stock
            ]
            _return_stock(locked, stocked, f"Cancel invoice {locked.document_number}")
            _reverse_entries([locked.journal_entry, locked.cogs_entry], actor, reason)
        elif isinstance(locked, Bill):
            if locked.posting_status != "pending":
                received = [
                    line for line in locked.lines.select_related("item")
                    if line.receives_stock
                ]
                _remove_stock(locked, received, f"Cancel bill {locked.document_number}")
            _reverse_entries([locked.journal_entry], actor, reason)
        else:
            _reverse_entries([locked.journal_entry], actor, reason)

    allocation.sync_balances(document, locked)
    return locked


# ----------------------------
# Delivery notes
# ----------------------------
def cancel_delivery_note(note, *, actor=""):
    """draft/posted → cancelled; a posted note gets its stock back and its COGS reversed."""
    with transaction.atomic():
        note = DeliveryNote.objects.select_for_update().get(pk=note.pk)
        before = note.status
        note.check_transition("cancelled")
        if before == "posted":
            _return_stock(
                note,
                list(note.lines.select_related("item")),
                f"Cancel DN {note.document_number}",
            )
            _reverse_entries([note.journal_entry], actor, f"Cancellation of {note}")
        note.status = "cancelled"
        note.save()
        _log_transition(note, before, actor)
    return note


def create_invoice_from_delivery_notes(company, notes, *, document_number, date,
                                       payment_method="credit", bank_account=None,
                                       actor=""):
    """
    Bill posted delivery notes of one customer with a single sale invoice.

    The stock already left with the notes, so the invoice lines do not
    consume it again; COGS stays on the notes' entries. Notes become
    "invoiced". Returns the SaleInvoicePosting of the new invoice.
    """
    with transaction.atomic():
        notes = [resolve_document(company, note, lock=True) for note in notes]
        if not notes:
            raise ValidationError("At least one delivery note is required")
        for note in notes:
            if note.status != "posted":
                raise InvalidTransitionError(
                    note.status, "invoiced", f"{note} must be posted before invoicing"
                )
        customers = {note.customer_id for note in notes}
        if len(customers) != 1:
            raise ValidationError("Delivery notes belong to different customers")

        invoice = Invoice.objects.create(
            company=company,
            customer=notes[0].customer,
            document_number=document_number,
            date=date,
            payment_method=payment_method,
            bank_account=bank_account,
            description=", ".join(note.document_number for note in notes),
        )
        for note in notes:
            for line in note.lines.select_related("item"):
                InvoiceLine.objects.create(
                    company=company,
                    invoice=invoice,
                    item=line.item,
                    description=line.description or line.item.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_rate=line.tax_rate,
                    unit_cost=line.unit_cost,
                    delivery_note=note,
                )
            note.status = "invoiced"
            note.invoice = invoice
            note.save()
            _log_transition(note, "posted", actor)

        report = post_sale_invoice(invoice, actor=actor)
    return report


# ----------------------------
# Dispatcher
# ----------------------------
def _transition_allocatable(document, target_state, actor):
    if target_state != "cancelled":
        # the other states follow from the balance (see allocation.apply)
        raise InvalidTransitionError(
            document.status, target_state,
            f"{document} changes to '{target_state}' only through applications",
        )
    return cancel_document(document, actor=actor)


def _transition_purchase_order(order, target_state, actor):
    if target_state == "received":
        before = order.status
        order = receive_purchase_order(order, actor=actor)
        _log_transition(order, before, actor)
        return order
    return _plain_transition(order, target_state, actor)


def _transition_delivery_note(note, target_state, actor):
    if target_state == "posted":
        note = post_delivery_note(note, actor=actor)
        _log_transition(note, "draft", actor)
        return note
    if target_state == "cancelled":
        return cancel_delivery_note(note, actor=actor)
    if target_state == "invoiced":
        raise InvalidTransitionError(
            note.status, target_state,
            "Use create_invoice_from_delivery_notes to invoice delivery notes",
        )
    return _plain_transition(note, target_state, actor)


def _transition_payroll(period, target_state, actor):
    with transaction.atomic():
        period = _plain_transition(period, target_state, actor)
        if period.is_postable and period.posting_status == "pending":
            post_payroll(period, actor=actor)
            period.refresh_from_db()
    return period


def _plain_transition(document, target_state, actor):
    with transaction.atomic():
        document = type(document).objects.select_for_update().get(pk=document.pk)
        before = document.status
        document.transition_to(target_state)
        _log_transition(document, before, actor)
    return document


_DISPATCH = {
    Invoice: _transition_allocatable,
    Bill: _transition_allocatable,
    Advance: _transition_allocatable,
    Payment: _transition_allocatable,
    PurchaseOrder: _transition_purchase_order,
    DeliveryNote: _transition_delivery_note,
    PayrollPeriod: _transition_payroll,
    RecurringSubscription: _plain_transition,
}


def transition_status(company, document_ref, target_state, *, actor=""):
    """
    Move a tenant's document to `target_state`, running the side effects
    that state change carries.

    Illegal moves raise InvalidTransitionError and change nothing.
    """
    document = resolve_document(company, document_ref)
    handler = _DISPATCH[type(document)]
    document = handler(document, target_state, actor)
    logger.info(
        "%s -> %s", document, document.status, extra={"company": company.pk}
    )
    return document
