from django.core.exceptions import ValidationError
from django.db import models
from .. import conf
from ..managers import TenantManager
from .banking import PAYMENT_METHODS, BankAccount
from .base import AllocatableDocument
from .company import Company
from .customer import Customer
from .supplier import Supplier

PARTY_SIDES = [
    ("customer", "Customer"),
    ("supplier", "Supplier"),
]

ALLOCATION_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("partial", "Partially applied"),
    ("applied", "Applied"),
    ("cancelled", "Cancelled"),
]

ALLOCATION_TRANSITIONS = {
    "pending": ["partial", "applied", "cancelled"],
    "partial": ["applied", "cancelled"],
    "applied": [],
    "cancelled": [],
}


class Advance(AllocatableDocument):
    """Money received from a customer (or paid to a supplier) before invoicing."""

    SETTLED_STATUS = "applied"
    TRANSITIONS = ALLOCATION_TRANSITIONS

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    side = models.CharField(max_length=10, choices=PARTY_SIDES)
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT,
        related_name="advances",
    )
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT,
        related_name="advances",
    )
    date = models.DateField()
    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHODS, default="transfer"
    )
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT
    )
    reference = models.CharField(max_length=200, blank=True, default="")
    concept = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=10, choices=ALLOCATION_STATUS_CHOICES, default="pending"
    )

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "side", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"],
                name="uq_advance_company_number",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(side="customer") & models.Q(customer__isnull=False)
                     & models.Q(supplier__isnull=True))
                    | (models.Q(side="supplier") & models.Q(supplier__isnull=False)
                       & models.Q(customer__isnull=True))
                ),
                name="advance_party_matches_side",
            ),
        ]

    def __str__(self):
        return f"Advance {self.document_number or self.pk}"

    @property
    def source_type(self):
        return f"{self.side}_advance"

    def clean(self):
        party = self.party
        if party is not None and party.company_id != self.company_id:
            raise ValidationError("Advance party must belong to the same company.")
        if self.bank_account_id and self.bank_account.company_id != self.company_id:
            raise ValidationError("Bank account must belong to the same company.")
        return super().clean()

    def save(self, *args, **kwargs):
        if not self.document_number:
            from ..services.numbering import next_number

            self.document_number = next_number(
                self.company, "advance", conf.advance_prefix()
            )
        self.full_clean()
        return super().save(*args, **kwargs)
