from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .base import PostableDocument, StatusMachineMixin
from .company import Company
from .customer import Customer
from .item import Item

DN_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("posted", "Posted"),  # goods left the warehouse
    ("invoiced", "Invoiced"),  # billed through a sale invoice
    ("cancelled", "Cancelled"),
]


class DeliveryNote(StatusMachineMixin, PostableDocument):
    """Goods shipped to a customer ahead of invoicing.

    journal_entry holds the cost-of-goods-sold entry made on posting.
    """

    SOURCE_TYPE = "delivery_note"
    TRANSITIONS = {
        "draft": ["posted", "cancelled"],
        "posted": ["invoiced", "cancelled"],
        "invoiced": [],
        "cancelled": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT)
    document_number = models.CharField(max_length=64)
    date = models.DateField()
    status = models.CharField(max_length=10, choices=DN_STATUS_CHOICES, default="draft")
    invoice = models.ForeignKey(
        "Invoice", null=True, blank=True, on_delete=models.PROTECT,
        related_name="delivery_notes",
    )
    notes = models.TextField(blank=True, default="")

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "status"])]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"], name="uq_dn_company_number"
            )
        ]

    def __str__(self):
        return f"DN {self.document_number}"

    def clean(self):
        if self.customer_id and self.customer.company_id != self.company_id:
            raise ValidationError("Customer must belong to the same company.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class DeliveryNoteLine(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    delivery_note = models.ForeignKey(
        DeliveryNote, on_delete=models.CASCADE, related_name="lines"
    )
    item = models.ForeignKey(Item, on_delete=models.PROTECT)
    description = models.TextField(blank=True, default="")
    quantity = models.DecimalField(max_digits=14, decimal_places=4)
    # Carried to the invoice line on conversion
    unit_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=6, decimal_places=4, default=Decimal("0"))
    # Average cost captured when the note was posted
    unit_cost = models.DecimalField(
        max_digits=18, decimal_places=6, null=True, blank=True)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0), name="dnline_qty_positive"
            ),
        ]

    def __str__(self):
        return f"{self.delivery_note} • {self.item} x {self.quantity}"

    def clean(self):
        if self.item_id and self.item.company_id != self.company_id:
            raise ValidationError("Item must belong to the same company.")

    def save(self, *args, **kwargs):
        if not self.company_id and self.delivery_note_id:
            self.company_id = self.delivery_note.company_id
        self.full_clean()
        return super().save(*args, **kwargs)
