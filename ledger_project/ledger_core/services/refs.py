from dataclasses import dataclass

from django.db import models

from ..models import (Advance, Bill, DeliveryNote, Invoice, Payment,
                      PayrollPeriod, PurchaseOrder, RecurringSubscription)

DOCUMENT_KINDS = {
    "invoice": Invoice,
    "ap_invoice": Bill,
    "advance": Advance,
    "payment": Payment,
    "purchase_order": PurchaseOrder,
    "delivery_note": DeliveryNote,
    "payroll_period": PayrollPeriod,
    "subscription": RecurringSubscription,
}


@dataclass(frozen=True)
class DocumentRef:
    """Points at a document without loading it, e.g. DocumentRef("invoice", 7)."""

    kind: str
    id: int

    @property
    def model(self):
        try:
            return DOCUMENT_KINDS[self.kind]
        except KeyError:
            raise ValueError(f"Unknown document kind '{self.kind}'") from None


def resolve_document(company, ref, *, lock=False):
    """Load a tenant's document from a DocumentRef (or pass a model through)."""
    if isinstance(ref, models.Model):
        model, pk = type(ref), ref.pk
    else:
        model, pk = ref.model, ref.id
    qs = model.objects.for_company(company)
    if lock:
        qs = qs.select_for_update()
    return qs.get(pk=pk)
