from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .company import Company

PAYMENT_METHODS = [
    ("cash", "Cash"),
    ("cheque", "Cheque"),
    ("transfer", "Bank Transfer"),
    ("card", "Card"),
    ("credit", "On Account"),  # nothing settled at creation
]


# ---------- Banking ----------
class BankAccount(models.Model):
    """A company bank account and the ledger account its money sits in."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=200)  # e.g. "Main Checking"
    # Partial account number for display/security
    account_number_masked = models.CharField(max_length=50, blank=True, default="")
    ledger_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="bank_accounts",
        help_text="Chart account debited/credited for movements here",
    )
    is_active = models.BooleanField(default=True)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_bankaccount_name"
            ),
        ]
        indexes = [models.Index(fields=["company", "name"])]

    def __str__(self):
        if self.account_number_masked:
            return f"{self.name} ({self.account_number_masked})"
        return self.name

    def clean(self):
        la = self.ledger_account
        if la and la.company_id != self.company_id:
            raise ValidationError(
                "Bank ledger account must belong to the same company."
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
