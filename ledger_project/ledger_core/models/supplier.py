from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .company import Company


class Supplier(models.Model):  # Mirrors Customer but for Accounts Payable (AP)
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    contact_email = models.EmailField(null=True, blank=True)
    payment_terms_days = models.IntegerField(default=30)

    # Preferred over AccountingSettings.ap_account when set
    default_ap_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="suppliers_default_ap",
        help_text="Default AP account used for this supplier",
    )
    # Asset that holds money paid before the supplier invoices
    advance_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="suppliers_advance",
        help_text="Supplier advances (prepayments) account",
    )

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "name"])]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_supplier_name"
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        for account in (self.default_ap_account, self.advance_account):
            if account and account.company_id != self.company_id:
                raise ValidationError(
                    "Supplier accounts must belong to the same company"
                )
        dap = self.default_ap_account
        if dap and not dap.is_control_account:
            raise ValidationError("Default AP account must be a control account")
        return super().clean()

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
