"""
Posting and allocation engine entry points.

Every call takes an already-resolved Company (the tenant); identity and
request handling happen in the caller.
"""
from .allocation import allocate, apply, apply_to_balance, cancel, reduce
from .chart import list_accounts
from .costing import consume, receive, receive_inventory
from .journal import (EntryDraft, LineDraft, post_journal_entry,
                      reverse_journal_entry)
from .lifecycle import (create_invoice_from_delivery_notes, transition_status)
from .opening_balances import opening_balance_summary, post_opening_balances
from .posting import (post_advance, post_bill, post_payment, post_payroll,
                      post_sale_invoice, repost_document)
from .recurring import process_pending_subscriptions
from .refs import DocumentRef
from .results import PostingResult
from .returns import register_return

__all__ = [
    "DocumentRef",
    "EntryDraft",
    "LineDraft",
    "PostingResult",
    "allocate",
    "apply",
    "apply_to_balance",
    "cancel",
    "consume",
    "create_invoice_from_delivery_notes",
    "list_accounts",
    "opening_balance_summary",
    "post_advance",
    "post_bill",
    "post_journal_entry",
    "post_opening_balances",
    "post_payment",
    "post_payroll",
    "post_sale_invoice",
    "process_pending_subscriptions",
    "receive",
    "receive_inventory",
    "reduce",
    "register_return",
    "repost_document",
    "reverse_journal_entry",
    "transition_status",
]
