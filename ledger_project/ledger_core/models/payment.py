from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .advance import ALLOCATION_STATUS_CHOICES, ALLOCATION_TRANSITIONS
from .banking import PAYMENT_METHODS, BankAccount
from .base import AllocatableDocument
from .company import Company
from .customer import Customer
from .supplier import Supplier

PAYMENT_DIRECTIONS = [
    ("receipt", "Customer receipt"),  # money in, settles invoices
    ("payment", "Supplier payment"),  # money out, settles bills
]


class Payment(AllocatableDocument):
    """Customer receipt or supplier payment; its balance is the unapplied part."""

    SETTLED_STATUS = "applied"
    TRANSITIONS = ALLOCATION_TRANSITIONS

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    direction = models.CharField(max_length=10, choices=PAYMENT_DIRECTIONS)
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT,
        related_name="receipts",
    )
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT,
        related_name="payments",
    )
    date = models.DateField()
    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHODS, default="transfer"
    )
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT
    )
    reference = models.CharField(max_length=200, blank=True, default="")
    status = models.CharField(
        max_length=10, choices=ALLOCATION_STATUS_CHOICES, default="pending"
    )

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "direction", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "document_number"],
                name="uq_payment_company_number",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(direction="receipt") & models.Q(customer__isnull=False)
                     & models.Q(supplier__isnull=True))
                    | (models.Q(direction="payment") & models.Q(supplier__isnull=False)
                       & models.Q(customer__isnull=True))
                ),
                name="payment_party_matches_direction",
            ),
        ]

    def __str__(self):
        return f"{self.get_direction_display()} {self.document_number or self.pk}"

    @property
    def source_type(self):
        return "customer_receipt" if self.direction == "receipt" else "supplier_payment"

    def clean(self):
        party = self.party
        if party is not None and party.company_id != self.company_id:
            raise ValidationError("Payment party must belong to the same company.")
        if self.bank_account_id and self.bank_account.company_id != self.company_id:
            raise ValidationError("Bank account must belong to the same company.")
        return super().clean()

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
