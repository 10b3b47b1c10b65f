import logging

from django.db import transaction
from django.utils import timezone

from .. import conf
from ..amounts import to_money
from ..models import Bill, DocumentReturn, Invoice
from .allocation import reduce
from .audit_helper import log_action
from .posting import post_best_effort
from .refs import resolve_document
from .rules import return_entry

logger = logging.getLogger(__name__)


def register_return(company, *, document, amount, date=None, concept="",
                    origin_account=None, actor=""):
    """
    Record goods returned against a sale invoice or AP invoice.

    The document's outstanding balance shrinks by `amount` (never below
    zero), then the return is posted best-effort. Returns the
    DocumentReturn with its posting_status set.
    """
    if isinstance(document, Invoice):
        side = "sale"
    elif isinstance(document, Bill):
        side = "purchase"
    else:
        raise TypeError(f"Returns apply to invoices and bills, not {type(document).__name__}")

    amount = to_money(amount)
    with transaction.atomic():
        document = reduce(resolve_document(company, document), amount)
        now = timezone.now()
        doc_return = DocumentReturn.objects.create(
            company=company,
            side=side,
            invoice=document if side == "sale" else None,
            bill=document if side == "purchase" else None,
            document_number=f"{conf.return_prefix()}-{now:%Y%m%d%H%M%S%f}",
            date=date or timezone.localdate(),
            amount=amount,
            concept=concept,
            origin_account=origin_account,
        )
        log_action(
            action="return",
            instance=document,
            actor=actor,
            changes={"amount": str(doc_return.amount), "return": doc_return.document_number},
        )
        post_best_effort(doc_return, lambda: return_entry(doc_return), actor=actor)

    logger.info(
        "Registered %s on %s", doc_return, document,
        extra={"company": company.pk, "posting_status": doc_return.posting_status},
    )
    return doc_return
