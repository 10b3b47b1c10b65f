from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .base import PostableDocument
from .bill import Bill
from .company import Company
from .invoice import Invoice

RETURN_SIDES = [
    ("sale", "Sales return"),
    ("purchase", "Purchase return"),
]


class DocumentReturn(PostableDocument):
    """Goods/services returned against a sale invoice or an AP invoice.

    Reduces the related document's collectible amount by `amount`.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    side = models.CharField(max_length=10, choices=RETURN_SIDES)
    invoice = models.ForeignKey(
        Invoice, null=True, blank=True, on_delete=models.PROTECT,
        related_name="returns",
    )
    bill = models.ForeignKey(
        Bill, null=True, blank=True, on_delete=models.PROTECT,
        related_name="returns",
    )
    document_number = models.CharField(max_length=64, blank=True, default="")
    date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    concept = models.CharField(max_length=200, blank=True, default="")
    # Income (sale) or expense (purchase) account being reversed;
    # defaults to the configured sales account / the bill's first line
    origin_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT, related_name="+"
    )

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "date"])]
        constraints = [
            models.CheckConstraint(
                condition=(
                    (models.Q(side="sale") & models.Q(invoice__isnull=False)
                     & models.Q(bill__isnull=True))
                    | (models.Q(side="purchase") & models.Q(bill__isnull=False)
                       & models.Q(invoice__isnull=True))
                ),
                name="return_target_matches_side",
            ),
        ]

    def __str__(self):
        return f"Return {self.document_number or self.pk} {self.amount}"

    @property
    def target(self):
        return self.invoice or self.bill

    @property
    def source_type(self):
        return f"{self.side}_return"

    def clean(self):
        target = self.target
        if target is not None and target.company_id != self.company_id:
            raise ValidationError("Returned document must belong to the same company.")
        if self.origin_account_id and self.origin_account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
