import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum

from .. import conf
from ..amounts import ZERO, to_money
from ..exceptions import InvalidTransitionError, UnbalancedEntryError
from ..models import OpeningBalance
from .journal import post_journal_entry
from .rules import opening_balance_entry

logger = logging.getLogger(__name__)


@dataclass
class OpeningBalanceSummary:
    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    is_balanced: bool
    accounts_with_balance: int
    is_posted: bool


@dataclass
class OpeningBalancePosting:
    entry: object
    lines_count: int
    total_debit: Decimal
    total_credit: Decimal


def _rows(company, fiscal_year):
    return OpeningBalance.objects.for_company(company).filter(fiscal_year=fiscal_year)


def opening_balance_summary(company, fiscal_year) -> OpeningBalanceSummary:
    rows = _rows(company, fiscal_year)
    agg = rows.aggregate(debit=Sum("debit"), credit=Sum("credit"))
    total_debit = to_money(agg["debit"] or ZERO)
    total_credit = to_money(agg["credit"] or ZERO)
    difference = total_debit - total_credit
    return OpeningBalanceSummary(
        total_debit=total_debit,
        total_credit=total_credit,
        difference=difference,
        is_balanced=abs(difference) < conf.balance_tolerance(),
        accounts_with_balance=rows.filter(Q(debit__gt=0) | Q(credit__gt=0)).count(),
        is_posted=rows.filter(is_posted=True).exists(),
    )


@transaction.atomic
def post_opening_balances(company, fiscal_year, *, entry_date=None, actor=""):
    """
    Post a fiscal year's opening balances as one entry (OB-<year>).

    Refuses sets that are unbalanced, empty or already posted; the rows
    are marked posted and linked to the entry.
    """
    rows = list(
        _rows(company, fiscal_year).select_for_update().select_related("account")
    )
    if any(row.is_posted for row in rows):
        raise InvalidTransitionError(
            "posted", "posted", f"Opening balances for {fiscal_year} are already posted"
        )
    rows = [row for row in rows if row.has_balance]
    if not rows:
        raise UnbalancedEntryError(
            ZERO, ZERO, f"No opening balances to post for {fiscal_year}"
        )

    summary = opening_balance_summary(company, fiscal_year)
    if not summary.is_balanced:
        raise UnbalancedEntryError(summary.total_debit, summary.total_credit)

    entry_date = entry_date or min(row.opening_date for row in rows)
    draft = opening_balance_entry(company, fiscal_year, rows, entry_date)
    entry = post_journal_entry(company, draft, actor=actor)

    for row in rows:
        row.is_posted = True
        row.journal_entry = entry
        row.save(update_fields=["is_posted", "journal_entry"])

    logger.info(
        "Opening balances %s posted as %s", fiscal_year, entry.entry_number,
        extra={"company": company.pk, "lines": len(rows)},
    )
    return OpeningBalancePosting(
        entry=entry,
        lines_count=len(rows),
        total_debit=summary.total_debit,
        total_credit=summary.total_credit,
    )
