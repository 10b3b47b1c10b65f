import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from .. import conf
from ..amounts import ZERO, to_money
from ..exceptions import (AlreadyPostedDifferentPayload, InvalidAccountError,
                          InvalidAmountError, InvalidTransitionError,
                          UnbalancedEntryError)
from ..models import Account, JournalEntry, JournalLine
from ..models.journal import compute_fingerprint
from .audit_helper import log_action
from .numbering import next_number

logger = logging.getLogger(__name__)


@dataclass
class LineDraft:
    account: Account
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""


@dataclass
class EntryDraft:
    """An unposted journal entry as produced by a posting rule."""

    entry_date: date
    lines: List[LineDraft] = field(default_factory=list)
    description: str = ""
    reference: str = ""
    # Leave empty to get the next "JE-000001" style number
    entry_number: str = ""
    source_type: str = ""
    source_id: Optional[int] = None
    reversal_of: Optional[JournalEntry] = None

    @property
    def total_debit(self):
        return sum((to_money(line.debit) for line in self.lines), ZERO)

    @property
    def total_credit(self):
        return sum((to_money(line.credit) for line in self.lines), ZERO)


# ----------------------------
# Journal-related workflows
# ----------------------------
def _check_line(company, line: LineDraft):
    account = line.account
    if account is None:
        raise InvalidAccountError("<none>", "no account given")
    if account.company_id != company.pk:
        raise InvalidAccountError(account, "account belongs to another company")
    if not account.is_active:
        raise InvalidAccountError(account, "account is inactive")
    if not account.allow_posting:
        raise InvalidAccountError(account, "account does not allow posting")
    if not account.is_leaf:
        raise InvalidAccountError(account, "account is not a leaf account")

    debit = to_money(line.debit)
    credit = to_money(line.credit)
    if debit < 0 or credit < 0:
        raise InvalidAmountError(
            min(debit, credit), f"Negative amount on account {account.code}"
        )
    if (debit > 0) == (credit > 0):
        raise InvalidAmountError(
            debit or credit,
            f"Line on account {account.code} needs exactly one of debit/credit",
        )
    return debit, credit


def post_journal_entry(company, draft: EntryDraft, *, actor: str = "") -> JournalEntry:
    """
    Validate and persist a posted journal entry, all or nothing.

    Raises InvalidAccountError naming the first non-postable account and
    UnbalancedEntryError when totals differ by a cent or more. Re-posting a
    draft whose entry_number already exists returns the existing entry if
    its lines are identical, else raises AlreadyPostedDifferentPayload.
    """
    if not draft.lines:
        raise UnbalancedEntryError(ZERO, ZERO, "A journal entry needs at least one line")

    amounts = [_check_line(company, line) for line in draft.lines]
    total_debit = sum((d for d, _ in amounts), ZERO)
    total_credit = sum((c for _, c in amounts), ZERO)
    if abs(total_debit - total_credit) >= conf.balance_tolerance():
        raise UnbalancedEntryError(total_debit, total_credit)

    # Lines without their own description inherit the entry's
    line_rows = [
        (line.account.pk, debit, credit, line.description or draft.description)
        for line, (debit, credit) in zip(draft.lines, amounts)
    ]

    with transaction.atomic():
        if draft.entry_number:
            existing = (
                JournalEntry.objects.for_company(company)
                .select_for_update()
                .filter(entry_number=draft.entry_number)
                .first()
            )
            if existing is not None:
                fp = compute_fingerprint(company.pk, draft.entry_date, line_rows)
                if existing.status == "posted" and existing.posting_fingerprint == fp:
                    return existing
                raise AlreadyPostedDifferentPayload(
                    f"Entry {draft.entry_number} already exists with different lines."
                )
            entry_number = draft.entry_number
        else:
            entry_number = next_number(company, "journal", conf.entry_number_prefix())

        entry = JournalEntry.objects.create(
            company=company,
            entry_number=entry_number,
            entry_date=draft.entry_date,
            description=draft.description,
            reference=draft.reference,
            source_type=draft.source_type,
            source_id=draft.source_id,
            reversal_of=draft.reversal_of,
            created_by=actor,
        )
        for idx, (account_id, debit, credit, description) in enumerate(line_rows, start=1):
            JournalLine.objects.create(
                company=company,
                journal=entry,
                line_number=idx,
                account_id=account_id,
                debit_amount=debit,
                credit_amount=credit,
                description=description,
            )
        entry = entry.post(actor=actor)

        log_action(
            action="post",
            instance=entry,
            actor=actor,
            changes={
                "entry_number": entry.entry_number,
                "total": str(entry.total_debit),
                "source": f"{draft.source_type}:{draft.source_id}",
            },
        )

    logger.info(
        "Posted journal entry %s",
        entry.entry_number,
        extra={
            "company": company.pk,
            "source_type": draft.source_type,
            "source_id": draft.source_id,
            "total": str(entry.total_debit),
        },
    )
    return entry


def reverse_journal_entry(entry: JournalEntry, *, entry_date=None, actor: str = "",
                          description: str = "") -> JournalEntry:
    """Post the mirror image of a posted entry; the original stays untouched."""
    if entry.status != "posted":
        raise InvalidTransitionError(entry.status, "reversed")
    if JournalEntry.objects.filter(reversal_of=entry).exists():
        raise InvalidTransitionError(
            "reversed", "reversed", f"Entry {entry.entry_number} is already reversed"
        )

    lines = [
        LineDraft(
            account=line.account,
            debit=line.credit_amount,
            credit=line.debit_amount,
            description=line.description,
        )
        for line in entry.lines.select_related("account").order_by("line_number")
    ]
    draft = EntryDraft(
        entry_date=entry_date or timezone.localdate(),
        lines=lines,
        description=description or f"Reversal of {entry.entry_number}",
        reference=entry.reference,
        entry_number=f"{entry.entry_number}-REV",
        source_type=entry.source_type,
        source_id=entry.source_id,
        reversal_of=entry,
    )
    return post_journal_entry(entry.company, draft, actor=actor)
