from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .advance import Advance
from .base import POSTING_STATUS
from .bill import Bill
from .company import Company
from .invoice import Invoice
from .payment import Payment


class Allocation(models.Model):
    """
    Bridge row: X amount of this advance/payment settles this invoice/bill.
    Written once by the allocation service, never edited.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # source (exactly one)
    advance = models.ForeignKey(
        Advance, null=True, blank=True, on_delete=models.PROTECT,
        related_name="allocations",
    )
    payment = models.ForeignKey(
        Payment, null=True, blank=True, on_delete=models.PROTECT,
        related_name="allocations",
    )
    # target (exactly one)
    invoice = models.ForeignKey(
        Invoice, null=True, blank=True, on_delete=models.PROTECT,
        related_name="allocations",
    )
    bill = models.ForeignKey(
        Bill, null=True, blank=True, on_delete=models.PROTECT,
        related_name="allocations",
    )
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    date = models.DateField()
    notes = models.TextField(blank=True, default="")
    # Only advance applications move money between ledger accounts
    journal_entry = models.ForeignKey(
        "JournalEntry", null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )
    posting_status = models.CharField(
        max_length=10, choices=POSTING_STATUS, default="pending"
    )
    posting_message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "created_at"])]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=Decimal("0")),
                name="allocation_amount_positive",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(advance__isnull=False) & models.Q(payment__isnull=True))
                    | (models.Q(advance__isnull=True) & models.Q(payment__isnull=False))
                ),
                name="allocation_single_source",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(invoice__isnull=False) & models.Q(bill__isnull=True))
                    | (models.Q(invoice__isnull=True) & models.Q(bill__isnull=False))
                ),
                name="allocation_single_target",
            ),
        ]

    def __str__(self):
        return f"{self.source} → {self.target}: {self.amount}"

    @property
    def source(self):
        return self.advance or self.payment

    @property
    def target(self):
        return self.invoice or self.bill

    @property
    def source_type(self):
        return "allocation"

    def record_posting(self, result):
        self.posting_status = result.status
        self.posting_message = result.message
        if result.entry is not None:
            self.journal_entry = result.entry
        self.save(
            update_fields=["posting_status", "posting_message", "journal_entry"]
        )

    def clean(self):
        for doc in (self.advance, self.payment, self.invoice, self.bill):
            if doc is not None and doc.company_id != self.company_id:
                raise ValidationError(
                    "Allocation documents must belong to the same company."
                )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
