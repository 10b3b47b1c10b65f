from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .company import Company

# Choice Lists
AC_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("income", "Income"),
    ("expense", "Expense"),
]

# Define whether the account normally increases
# on the debit side or credit side
NORMAL_BALANCE = [
    ("debit", "Debit"),
    ("credit", "Credit"),
]

NORMAL_BALANCE_BY_TYPE = {
    "asset": "debit",
    "expense": "debit",
    "liability": "credit",
    "equity": "credit",
    "income": "credit",
}


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per company
    - only active leaf accounts with allow_posting=True take journal lines;
      parents exist for grouping
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=200)
    ac_type = models.CharField(max_length=10, choices=AC_TYPES)
    # Filled from ac_type when left empty
    normal_balance = models.CharField(
        max_length=6, choices=NORMAL_BALANCE, blank=True
    )
    # Optional hierarchy (e.g. 1100 Banks → 1101 Main Checking)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # can't delete a parent while children exist
        related_name="children",
    )
    # Grouping accounts (headers) switch this off
    allow_posting = models.BooleanField(default=True)
    # "soft deactivate" without deleting history
    is_active = models.BooleanField(default=True)
    # marker for accounts that must reconcile with subledgers (AR/AP)
    is_control_account = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        ordering = ["code"]
        indexes = [
            models.Index(fields=["company", "ac_type"]),
            models.Index(fields=["company", "code"]),
            models.Index(fields=["company", "parent"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"], name="uq_company_account_code"
            )
        ]

    def __str__(self):
        return f"{self.code} {self.name}"

    @property
    def is_leaf(self):
        if not self.pk:
            return True
        return not self.children.exists()

    @property
    def can_post(self):
        return self.is_active and self.allow_posting and self.is_leaf

    def clean(self):
        # Check if parent account belongs to same company
        if self.parent_id:
            if self.parent.company_id != self.company_id:
                raise ValidationError(
                    "Parent & child accounts must belong to the same company"
                )
            if self.pk and self.parent_id == self.pk:
                raise ValidationError("An account cannot be its own parent")

    def save(self, *args, **kwargs):
        if not self.normal_balance:
            self.normal_balance = NORMAL_BALANCE_BY_TYPE.get(self.ac_type, "debit")

        if self.pk:
            old = Account.objects.filter(pk=self.pk).first()
            # Can't disable an account that carries journal history
            if old and old.is_active and not self.is_active:
                from .journal import JournalLine

                if JournalLine.objects.filter(account=self).exists():
                    raise ValidationError(
                        "Cannot disable an account that is used in journal lines."
                    )
        self.full_clean()
        return super().save(*args, **kwargs)
