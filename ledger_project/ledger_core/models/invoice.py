from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..amounts import ZERO, to_money
from ..managers import TenantManager
from .account import Account
from .banking import PAYMENT_METHODS, BankAccount
from .base import POSTING_STATUS, AllocatableDocument
from .company import Company
from .customer import Customer
from .item import Item

INV_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("partial", "Partially paid"),
    ("paid", "Paid"),
    ("cancelled", "Cancelled"),
]


class Invoice(AllocatableDocument):
    """Customer (sale) invoice."""

    SOURCE_TYPE = "sale_invoice"
    SETTLED_STATUS = "paid"
    TRANSITIONS = {
        "pending": ["partial", "paid", "cancelled"],
        "partial": ["paid", "cancelled"],
        "paid": [],
        "cancelled": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # prevent deleting customer who has an invoice
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT)
    date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=10, choices=INV_STATUS_CHOICES, default="pending"
    )
    # Anything but "credit" is settled in full when the invoice is posted
    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHODS, default="credit"
    )
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT
    )
    description = models.TextField(blank=True, default="")

    subtotal = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Second entry: cost of goods sold for stocked lines
    cogs_entry = models.ForeignKey(
        "JournalEntry", null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )
    cogs_posting_status = models.CharField(
        max_length=10, choices=POSTING_STATUS, default="pending"
    )

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "document_number"]),
            models.Index(fields=["company", "customer"]),
            models.Index(fields=["company", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"],
                name="uq_invoice_company_number",
            )
        ]

    def __str__(self):
        return f"Inv {self.document_number or self.pk}"

    @property
    def settled_on_creation(self):
        return self.payment_method != "credit"

    def recalc_totals(self):
        """Recompute subtotal/tax/original from lines, keeping applied amounts."""
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

    def record_cogs_posting(self, result):
        self.cogs_posting_status = result.status
        if result.entry is not None:
            self.cogs_entry = result.entry
        self.save(update_fields=["cogs_posting_status", "cogs_entry"])

    def clean(self):
        if self.customer_id and self.customer.company_id != self.company_id:
            raise ValidationError("Customer must belong to the same company.")
        if self.bank_account_id and self.bank_account.company_id != self.company_id:
            raise ValidationError("Bank account must belong to the same company.")
        return super().clean()

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class InvoiceLine(models.Model):
    """Product/service sold; quantity × unit_price = line_total."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(Item, null=True, blank=True, on_delete=models.PROTECT)
    description = models.TextField(blank=True, default="")
    quantity = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("1"))
    unit_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00"))
    # e.g. 0.18 for 18%
    tax_rate = models.DecimalField(max_digits=6, decimal_places=4, default=Decimal("0"))
    line_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Sales account override for this line
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        help_text="Sales / revenue account for this line",
    )
    # Average cost captured when the stock left; never recomputed later
    unit_cost = models.DecimalField(
        max_digits=18, decimal_places=6, null=True, blank=True)
    # Stock already left through this delivery note
    delivery_note = models.ForeignKey(
        "DeliveryNote", null=True, blank=True, on_delete=models.PROTECT,
        related_name="invoice_lines",
    )

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "invoice"])]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(unit_price__gte=0),
                name="invoiceline_qty_positive_price_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.invoice} • {self.description or self.item}"

    @property
    def consumes_stock(self):
        return bool(self.item_id and self.item.is_inventory and not self.delivery_note_id)

    def clean(self):
        if self.invoice_id and self.invoice.company_id != self.company_id:
            raise ValidationError("InvoiceLine.company must equal Invoice.company")
        if self.item_id and self.item.company_id != self.company_id:
            raise ValidationError("Item must belong to the same company.")
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")
        if self.tax_rate < 0:
            raise ValidationError("Tax rate cannot be negative")

    def save(self, *args, **kwargs):
        if not self.company_id and self.invoice_id:
            self.company_id = self.invoice.company_id
        self.line_total = to_money(Decimal(self.quantity) * Decimal(self.unit_price))
        self.tax_amount = to_money(self.line_total * Decimal(self.tax_rate))
        self.full_clean()
        return super().save(*args, **kwargs)
