"""
Posting rules: what each business document puts in the ledger.

Every rule maps a document's resolved amounts to an EntryDraft. Rules never
decide whether to post and never write; a missing account surfaces as
MissingConfigurationError from the account lookups in .chart.
"""
from collections import OrderedDict

from .. import conf
from ..amounts import ZERO, to_money
from ..exceptions import MissingConfigurationError, UnbalancedEntryError
from ..models import AccountingSettings
from .chart import (advance_account, cogs_account_for, expense_account_for,
                    inventory_account_for, payable_account, receivable_account,
                    sales_account_for, settlement_account)
from .journal import EntryDraft, LineDraft


def _grouped(pairs):
    """Sum (account, amount) pairs per account, keeping first-seen order."""
    totals = OrderedDict()
    for account, amount in pairs:
        key = account.pk
        if key in totals:
            totals[key] = (account, totals[key][1] + amount)
        else:
            totals[key] = (account, amount)
    return [(account, to_money(amount)) for account, amount in totals.values() if amount]


def _settings(document):
    return AccountingSettings.for_company(document.company)


# ----------------------------
# Sales side
# ----------------------------
def sale_invoice_entry(invoice, lines):
    """Debit AR (or bank/cash when settled at creation), credit sales and tax."""
    settings = _settings(invoice)
    if invoice.settled_on_creation:
        debit_account = settlement_account(
            settings, invoice.payment_method, invoice.bank_account
        )
    else:
        debit_account = receivable_account(settings, invoice.customer)

    entry_lines = [
        LineDraft(
            account=debit_account,
            debit=invoice.original_amount,
            description=f"Invoice {invoice.document_number} - {invoice.customer}",
        )
    ]
    for account, amount in _grouped(
        (sales_account_for(settings, line), line.line_total) for line in lines
    ):
        entry_lines.append(LineDraft(account=account, credit=amount))
    if invoice.tax_amount > 0:
        entry_lines.append(
            LineDraft(
                account=settings.require("sales_tax_account"),
                credit=invoice.tax_amount,
                description=f"Tax on invoice {invoice.document_number}",
            )
        )

    return EntryDraft(
        entry_date=invoice.date,
        lines=entry_lines,
        description=f"Sale invoice {invoice.document_number}",
        reference=f"invoice:{invoice.pk}",
        entry_number=invoice.document_number,
        source_type=invoice.source_type,
        source_id=invoice.pk,
    )


def cogs_entry(document, lines, *, entry_number):
    """
    Debit COGS, credit inventory for Σ quantity × unit_cost.

    `lines` carry item, quantity and the unit_cost captured when stock left.
    Returns None when nothing has a cost.
    """
    settings = _settings(document)
    debits = []
    credits = []
    for line in lines:
        amount = to_money(line.quantity * line.unit_cost)
        if not amount:
            continue
        debits.append((cogs_account_for(settings, line.item), amount))
        credits.append((inventory_account_for(settings, line.item), amount))
    if not debits:
        return None

    entry_lines = [LineDraft(account=a, debit=amt) for a, amt in _grouped(debits)]
    entry_lines += [LineDraft(account=a, credit=amt) for a, amt in _grouped(credits)]
    return EntryDraft(
        entry_date=document.date,
        lines=entry_lines,
        description=f"Cost of goods sold - {document.document_number}",
        reference=f"{document.source_type}:{document.pk}",
        entry_number=entry_number,
        source_type=f"{document.source_type}_cogs",
        source_id=document.pk,
    )


# ----------------------------
# Purchase side
# ----------------------------
def bill_entry(bill, lines):
    """Debit expense/inventory (and recoverable tax), credit AP."""
    settings = _settings(bill)
    separate_tax = settings.purchase_tax_account_id is not None

    debits = []
    for line in lines:
        if line.receives_stock:
            account = inventory_account_for(settings, line.item)
        else:
            account = expense_account_for(line)
        amount = line.line_total
        if not separate_tax:
            # non-recoverable tax is part of the cost
            amount += line.tax_amount
        debits.append((account, amount))

    entry_lines = [LineDraft(account=a, debit=amt) for a, amt in _grouped(debits)]
    if separate_tax and bill.tax_amount > 0:
        entry_lines.append(
            LineDraft(account=settings.purchase_tax_account, debit=bill.tax_amount)
        )
    entry_lines.append(
        LineDraft(
            account=payable_account(settings, bill.supplier),
            credit=bill.original_amount,
            description=f"Bill {bill.document_number} - {bill.supplier}",
        )
    )
    return EntryDraft(
        entry_date=bill.date,
        lines=entry_lines,
        description=f"Supplier invoice {bill.document_number}",
        reference=f"bill:{bill.pk} {bill.supplier_reference}".strip(),
        entry_number=f"AP-{bill.document_number}",
        source_type=bill.source_type,
        source_id=bill.pk,
    )


def purchase_receipt_entry(order, lines):
    """Debit inventory for goods received, credit the supplier's AP."""
    settings = _settings(order)
    debits = [
        (inventory_account_for(settings, line.item), line.line_total) for line in lines
    ]
    grouped = _grouped(debits)
    if not grouped:
        return None
    total = sum((amount for _, amount in grouped), ZERO)
    entry_lines = [LineDraft(account=a, debit=amt) for a, amt in grouped]
    entry_lines.append(
        LineDraft(account=payable_account(settings, order.supplier), credit=total)
    )
    return EntryDraft(
        entry_date=order.received_date or order.order_date,
        lines=entry_lines,
        description=f"Goods received on PO {order.document_number}",
        reference=f"PO {order.document_number}",
        entry_number=f"{order.document_number}-REC",
        source_type=order.source_type,
        source_id=order.pk,
    )


# ----------------------------
# Money in / money out
# ----------------------------
def advance_entry(advance):
    """Customer: debit bank, credit advances. Supplier: the mirror."""
    settings = _settings(advance)
    party = advance.party
    holding = advance_account(party)
    amount = advance.original_amount
    memo = f"Advance {advance.document_number} - {party}"
    if advance.side == "customer":
        bank = settlement_account(settings, advance.payment_method, advance.bank_account)
        entry_lines = [
            LineDraft(account=bank, debit=amount, description=memo),
            LineDraft(account=holding, credit=amount, description=memo),
        ]
    else:
        bank = settlement_account(
            settings, advance.payment_method, advance.bank_account,
            fallback="ap_bank_account",
        )
        entry_lines = [
            LineDraft(account=holding, debit=amount, description=memo),
            LineDraft(account=bank, credit=amount, description=memo),
        ]
    reference = f"Advance:{advance.pk}"
    if advance.reference:
        reference += f" Ref:{advance.reference}"
    return EntryDraft(
        entry_date=advance.date,
        lines=entry_lines,
        description=advance.concept or memo,
        reference=reference,
        entry_number=advance.document_number,
        source_type=advance.source_type,
        source_id=advance.pk,
    )


def advance_application_entry(allocation):
    """Move an applied advance out of the advances account against AR/AP."""
    advance = allocation.advance
    settings = _settings(allocation)
    party = advance.party
    holding = advance_account(party)
    amount = allocation.amount
    target = allocation.target
    memo = f"Advance {advance.document_number} applied to {target.document_number}"
    if advance.side == "customer":
        entry_lines = [
            LineDraft(account=holding, debit=amount, description=memo),
            LineDraft(account=receivable_account(settings, party), credit=amount,
                      description=memo),
        ]
    else:
        entry_lines = [
            LineDraft(account=payable_account(settings, party), debit=amount,
                      description=memo),
            LineDraft(account=holding, credit=amount, description=memo),
        ]
    return EntryDraft(
        entry_date=allocation.date,
        lines=entry_lines,
        description=memo,
        reference=f"allocation:{allocation.pk}",
        entry_number=f"APL-{allocation.pk}",
        source_type=allocation.source_type,
        source_id=allocation.pk,
    )


def payment_entry(payment):
    """Receipt: debit bank, credit AR. Supplier payment: debit AP, credit bank."""
    settings = _settings(payment)
    amount = payment.original_amount
    if payment.direction == "receipt":
        bank = settlement_account(settings, payment.payment_method, payment.bank_account)
        entry_lines = [
            LineDraft(account=bank, debit=amount),
            LineDraft(account=receivable_account(settings, payment.customer),
                      credit=amount),
        ]
        prefix = "RCPT"
    else:
        bank = settlement_account(
            settings, payment.payment_method, payment.bank_account,
            fallback="ap_bank_account",
        )
        entry_lines = [
            LineDraft(account=payable_account(settings, payment.supplier), debit=amount),
            LineDraft(account=bank, credit=amount),
        ]
        prefix = "PMT"
    return EntryDraft(
        entry_date=payment.date,
        lines=entry_lines,
        description=f"{payment.get_direction_display()} {payment.document_number} - "
                    f"{payment.party}",
        reference=payment.reference,
        entry_number=f"{prefix}-{payment.document_number}",
        source_type=payment.source_type,
        source_id=payment.pk,
    )


# ----------------------------
# Returns, payroll, opening balances
# ----------------------------
def _purchase_origin_account(settings, bill):
    for line in bill.lines.select_related("item", "account"):
        if line.receives_stock:
            return inventory_account_for(settings, line.item)
        try:
            return expense_account_for(line)
        except MissingConfigurationError:
            continue
    raise MissingConfigurationError(
        "origin_account", f"Cannot tell which account {bill} was booked to"
    )


def return_entry(doc_return):
    """
    Sale: debit the income account, credit sales returns.
    Purchase: debit purchase returns, credit the expense/inventory account.
    """
    settings = _settings(doc_return)
    amount = doc_return.amount
    if doc_return.side == "sale":
        origin = doc_return.origin_account or settings.require("sales_account")
        entry_lines = [
            LineDraft(account=origin, debit=amount),
            LineDraft(account=settings.require("sales_returns_account"), credit=amount),
        ]
        party = doc_return.invoice.customer
    else:
        origin = doc_return.origin_account or _purchase_origin_account(
            settings, doc_return.bill
        )
        entry_lines = [
            LineDraft(account=settings.require("purchase_returns_account"), debit=amount),
            LineDraft(account=origin, credit=amount),
        ]
        party = doc_return.bill.supplier
    target = doc_return.target
    return EntryDraft(
        entry_date=doc_return.date,
        lines=entry_lines,
        description=doc_return.concept or f"Return on {target.document_number}",
        reference=f"RET|{party}|{target.document_number}|{doc_return.concept}",
        entry_number=doc_return.document_number,
        source_type=doc_return.source_type,
        source_id=doc_return.pk,
    )


def check_payroll_totals(period):
    """Gross must equal deductions + net before anything is posted."""
    if period.total_gross != period.total_deductions + period.total_net:
        raise UnbalancedEntryError(
            period.total_gross,
            period.total_deductions + period.total_net,
            f"Payroll {period.name}: gross {period.total_gross} != deductions "
            f"{period.total_deductions} + net {period.total_net}",
        )


def payroll_entry(period):
    """Debit salaries (gross), credit withholdings and payroll payable."""
    check_payroll_totals(period)
    settings = _settings(period)
    entry_lines = [
        LineDraft(
            account=settings.require("salaries_expense_account"),
            debit=period.total_gross,
            description="Gross salaries",
        )
    ]
    if period.total_deductions > 0:
        entry_lines.append(
            LineDraft(
                account=settings.require("withholdings_payable_account"),
                credit=period.total_deductions,
                description="Payroll withholdings",
            )
        )
    if period.total_net > 0:
        entry_lines.append(
            LineDraft(
                account=settings.require("payroll_payable_account"),
                credit=period.total_net,
                description="Net payroll payable",
            )
        )
    posting_date = period.payment_date or period.end_date
    return EntryDraft(
        entry_date=posting_date,
        lines=entry_lines,
        description=f"Payroll {period.name}",
        reference=f"payroll:{period.pk}",
        entry_number=f"{conf.payroll_prefix()}-{posting_date:%Y%m%d}-{period.pk}",
        source_type=period.source_type,
        source_id=period.pk,
    )


def opening_balance_entry(company, fiscal_year, rows, entry_date):
    """One line per account with a nonzero opening debit or credit."""
    entry_lines = []
    for row in rows:
        if row.debit > 0:
            entry_lines.append(LineDraft(account=row.account, debit=row.debit))
        elif row.credit > 0:
            entry_lines.append(LineDraft(account=row.account, credit=row.credit))
    return EntryDraft(
        entry_date=entry_date,
        lines=entry_lines,
        description=f"Opening balances {fiscal_year}",
        reference=f"opening:{fiscal_year}",
        entry_number=f"OB-{fiscal_year}",
        source_type="opening_balance",
        source_id=fiscal_year,
    )
