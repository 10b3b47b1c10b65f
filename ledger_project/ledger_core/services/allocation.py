import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..amounts import ZERO, to_money
from ..exceptions import (CancellationNotAllowedError, InvalidAmountError,
                          InvalidTransitionError, OverApplicationError)
from ..models import Advance, Allocation, Bill, Invoice, Payment
from .audit_helper import log_action
from .refs import resolve_document
from .results import PostingResult

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    allocation: Allocation
    source: object
    target: object
    posting: Optional[PostingResult] = None


def _positive_amount(amount):
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def _lock(document):
    return type(document).objects.select_for_update().get(pk=document.pk)


def sync_balances(document, locked):
    """Copy the balance fields of a committed row onto the caller's instance."""
    for field in ("original_amount", "applied_amount", "balance_amount", "status"):
        setattr(document, field, getattr(locked, field))


def _save_balances(locked):
    locked.allow_balance_write()
    locked.save()


def _restatus(locked):
    new_status = locked.derive_status()
    if new_status != locked.status:
        locked.check_transition(new_status)
        locked.status = new_status


# ----------------------------
# Single-document balance changes
# This module is the only writer of applied/balance/original amounts.
# The *_locked helpers work on a row already locked by the caller's
# transaction; public functions copy the result back to the caller's
# instance only once their transaction has committed.
# ----------------------------
def _apply_locked(locked, amount):
    if locked.is_cancelled:
        raise InvalidTransitionError(
            "cancelled", locked.SETTLED_STATUS,
            f"{locked} is cancelled and accepts no applications",
        )
    if amount > locked.balance_amount:
        raise OverApplicationError(amount, locked.balance_amount, locked)

    locked.applied_amount += amount
    locked.balance_amount -= amount
    _restatus(locked)
    _save_balances(locked)
    return locked


def apply(document, amount):
    """
    Apply `amount` against the document's outstanding balance.

    Fails with InvalidAmountError for amount <= 0 and OverApplicationError
    (requested vs available) when it exceeds the balance; the document is
    left untouched in both cases.
    """
    amount = _positive_amount(amount)
    with transaction.atomic():
        locked = _apply_locked(_lock(document), amount)

    sync_balances(document, locked)
    return locked


def reduce(document, amount):
    """Shrink what is collectible on a document (returns); same guards as apply."""
    amount = _positive_amount(amount)
    with transaction.atomic():
        locked = _lock(document)
        if locked.is_cancelled:
            raise InvalidTransitionError("cancelled", "reduced")
        if amount > locked.balance_amount:
            raise OverApplicationError(amount, locked.balance_amount, locked)

        locked.original_amount -= amount
        locked.balance_amount -= amount
        _restatus(locked)
        _save_balances(locked)

    sync_balances(document, locked)
    return locked


def cancel_locked(locked, *, actor=""):
    """Cancel a row the caller already holds locked; see cancel()."""
    locked.check_transition("cancelled")
    if locked.applied_amount > 0:
        raise CancellationNotAllowedError(locked, locked.applied_amount)

    before = str(locked.balance_amount)
    locked.applied_amount = ZERO
    locked.balance_amount = ZERO
    locked.status = "cancelled"
    _save_balances(locked)
    log_action(
        action="cancel",
        instance=locked,
        actor=actor,
        changes={"balance_amount": [before, "0.00"]},
    )
    logger.info("Cancelled %s", locked, extra={"company": locked.company_id})
    return locked


def cancel(document, *, actor=""):
    """
    Cancel a document that nothing has been applied against yet.

    A cancelled document keeps original_amount for audit but applied and
    balance drop to zero; it never leaves "cancelled" again.
    """
    with transaction.atomic():
        locked = cancel_locked(_lock(document), actor=actor)

    sync_balances(document, locked)
    return locked


def apply_to_balance(company, document_ref, amount):
    """Tenant-scoped apply() by DocumentRef."""
    document = resolve_document(company, document_ref)
    return apply(document, amount)


# ----------------------------
# Two-sided allocation (advance/payment → invoice/bill)
# ----------------------------
_TARGETS = {
    ("advance", "customer"): Invoice,
    ("advance", "supplier"): Bill,
    ("payment", "receipt"): Invoice,
    ("payment", "payment"): Bill,
}


def _check_pair(source, target):
    if isinstance(source, Advance):
        key = ("advance", source.side)
    elif isinstance(source, Payment):
        key = ("payment", source.direction)
    else:
        raise ValidationError(f"{source} cannot be allocated")
    if not isinstance(target, _TARGETS[key]):
        raise ValidationError(f"{source} cannot settle {target}")
    if source.company_id != target.company_id:
        raise ValidationError("Source and target must belong to the same company.")
    if source.party != target.party:
        raise ValidationError(f"{source} and {target} belong to different parties")


def allocate(source, target, amount, *, date=None, actor="", notes=""):
    """
    Settle part of `target` (invoice/bill) with `source` (advance/payment).

    Both balances move in one transaction: if either side would go
    negative nothing is written, and the caller's `source` and `target`
    keep their previous amounts.
    """
    # lazy import to avoid circular import at module load time
    from .posting import post_advance_application

    amount = _positive_amount(amount)
    _check_pair(source, target)

    with transaction.atomic():
        # fixed lock order (target, then source) keeps concurrent allocations
        # from deadlocking each other
        locked_target = _apply_locked(_lock(target), amount)
        locked_source = _apply_locked(_lock(source), amount)

        allocation = Allocation.objects.create(
            company=locked_target.company,
            advance=locked_source if isinstance(source, Advance) else None,
            payment=locked_source if isinstance(source, Payment) else None,
            invoice=locked_target if isinstance(target, Invoice) else None,
            bill=locked_target if isinstance(target, Bill) else None,
            amount=amount,
            date=date or timezone.localdate(),
            notes=notes,
        )
        log_action(
            action="allocate",
            instance=allocation,
            actor=actor,
            changes={
                "source": str(locked_source),
                "target": str(locked_target),
                "amount": str(amount),
            },
        )

        posting = None
        # receipts were already booked against AR/AP when posted;
        # advances still sit in the advances account
        if isinstance(source, Advance):
            posting = post_advance_application(allocation, actor=actor)

    sync_balances(target, locked_target)
    sync_balances(source, locked_source)
    return AllocationResult(allocation, locked_source, locked_target, posting)
