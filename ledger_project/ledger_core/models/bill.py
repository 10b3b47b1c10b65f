from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..amounts import ZERO, to_money
from ..managers import TenantManager
from .account import Account
from .base import AllocatableDocument
from .company import Company
from .item import Item
from .supplier import Supplier

BILL_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("partial", "Partially paid"),
    ("paid", "Paid"),
    ("cancelled", "Cancelled"),
]


class Bill(AllocatableDocument):  # Mirrors Invoice but for AP side
    """Supplier (accounts-payable) invoice."""

    SOURCE_TYPE = "ap_invoice"
    SETTLED_STATUS = "paid"
    TRANSITIONS = {
        "pending": ["partial", "paid", "cancelled"],
        "partial": ["paid", "cancelled"],
        "paid": [],
        "cancelled": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT)
    # The supplier's own invoice number
    supplier_reference = models.CharField(max_length=100, blank=True, default="")
    date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=10, choices=BILL_STATUS_CHOICES, default="pending"
    )
    description = models.TextField(blank=True, default="")
    subtotal = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "document_number"]),
            models.Index(fields=["company", "supplier"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"],
                name="uq_bill_company_number",
            )
        ]

    def __str__(self):
        return f"Bill {self.document_number or self.pk}"

    def recalc_totals(self):
        subtotal = ZERO
        tax = ZERO
        for line in self.lines.all():
            subtotal += line.line_total
            tax += line.tax_amount
        self.subtotal = to_money(subtotal)
        self.tax_amount = to_money(tax)
        self.original_amount = self.subtotal + self.tax_amount
        self.balance_amount = self.original_amount - self.applied_amount
        if not self.applied_amount:
            self.allow_balance_write()

    def clean(self):
        if self.supplier_id and self.supplier.company_id != self.company_id:
            raise ValidationError("Supplier must belong to the same company.")
        return super().clean()

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class BillLine(models.Model):
    """Expense line, or a stock receipt line when item is inventory."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(Item, null=True, blank=True, on_delete=models.PROTECT)
    description = models.TextField(blank=True, default="")
    quantity = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("1"))
    unit_cost = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=6, decimal_places=4, default=Decimal("0"))
    line_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Expense account override for this line
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        help_text="Expense account (ignored for stocked items)",
    )

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "bill"])]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(unit_cost__gte=0),
                name="billline_qty_positive_cost_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.bill} • {self.description or self.item}"

    @property
    def receives_stock(self):
        return bool(self.item_id and self.item.is_inventory)

    def clean(self):
        if self.bill_id and self.bill.company_id != self.company_id:
            raise ValidationError("BillLine.company must equal Bill.company")
        if self.item_id and self.item.company_id != self.company_id:
            raise ValidationError("Item must belong to the same company.")
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")
        if self.tax_rate < 0:
            raise ValidationError("Tax rate cannot be negative")

    def save(self, *args, **kwargs):
        if not self.company_id and self.bill_id:
            self.company_id = self.bill.company_id
        self.line_total = to_money(Decimal(self.quantity) * Decimal(self.unit_cost))
        self.tax_amount = to_money(self.line_total * Decimal(self.tax_rate))
        self.full_clean()
        return super().save(*args, **kwargs)
