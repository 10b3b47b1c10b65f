from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..amounts import to_money
from ..managers import TenantManager
from .base import PostableDocument, StatusMachineMixin
from .company import Company
from .item import Item
from .supplier import Supplier

PO_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("sent", "Sent"),
    ("approved", "Approved"),
    ("received", "Received"),
    ("cancelled", "Cancelled"),
]


class PurchaseOrder(StatusMachineMixin, PostableDocument):
    """Order to a supplier; receiving it brings stock in."""

    SOURCE_TYPE = "purchase_order"
    TRANSITIONS = {
        "draft": ["sent", "approved", "cancelled"],
        "sent": ["approved", "cancelled"],
        "approved": ["received", "cancelled"],
        "received": [],
        "cancelled": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT)
    document_number = models.CharField(max_length=64)
    order_date = models.DateField()
    expected_date = models.DateField(null=True, blank=True)
    received_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=PO_STATUS_CHOICES, default="draft")
    notes = models.TextField(blank=True, default="")

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "status"])]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"], name="uq_po_company_number"
            )
        ]

    def __str__(self):
        return f"PO {self.document_number}"

    @property
    def total(self):
        return sum((line.line_total for line in self.lines.all()), Decimal("0.00"))

    def clean(self):
        if self.supplier_id and self.supplier.company_id != self.company_id:
            raise ValidationError("Supplier must belong to the same company.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class PurchaseOrderLine(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    purchase_order = models.ForeignKey(
        PurchaseOrder, on_delete=models.CASCADE, related_name="lines"
    )
    item = models.ForeignKey(Item, on_delete=models.PROTECT)
    quantity = models.DecimalField(max_digits=14, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=18, decimal_places=4)
    line_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    objects = TenantManager()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(unit_cost__gte=0),
                name="poline_qty_positive_cost_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.purchase_order} • {self.item} x {self.quantity}"

    def clean(self):
        if self.item_id and self.item.company_id != self.company_id:
            raise ValidationError("Item must belong to the same company.")
        if self.purchase_order_id and self.purchase_order.status != "draft":
            raise ValidationError("Lines can only change while the order is a draft.")

    def save(self, *args, **kwargs):
        if not self.company_id and self.purchase_order_id:
            self.company_id = self.purchase_order.company_id
        self.line_total = to_money(Decimal(self.quantity) * Decimal(self.unit_cost))
        self.full_clean()
        return super().save(*args, **kwargs)
