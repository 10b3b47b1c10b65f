from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .company import Company


class OpeningBalance(models.Model):
    """Starting debit or credit of one account for a fiscal year."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    fiscal_year = models.PositiveIntegerField()
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    opening_date = models.DateField()
    debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    is_posted = models.BooleanField(default=False)
    journal_entry = models.ForeignKey(
        "JournalEntry", null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )

    objects = TenantManager()

    class Meta:
        ordering = ["account__code"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "fiscal_year", "account"],
                name="uq_opening_balance_year_account",
            ),
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="opening_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.fiscal_year} {self.account.code} D:{self.debit} C:{self.credit}"

    @property
    def has_balance(self):
        return self.debit > 0 or self.credit > 0

    def clean(self):
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")
        # Entering one side zeroes the other in the UI; enforce it here too
        if self.debit > 0 and self.credit > 0:
            raise ValidationError("Opening balance is either a debit or a credit")
        if self.pk:
            orig = OpeningBalance.objects.filter(pk=self.pk).first()
            if orig and orig.is_posted and (
                orig.debit != self.debit or orig.credit != self.credit
            ):
                raise ValidationError("Posted opening balances cannot be changed.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
