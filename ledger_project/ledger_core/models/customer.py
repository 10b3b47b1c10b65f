from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .company import Company


# ---------- Customer ----------
# Client who receives invoices (AR side)
class Customer(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    contact_email = models.EmailField(null=True, blank=True)
    # Standard credit terms, e.g. 30 → due 30 days after issue
    payment_terms_days = models.IntegerField(default=30)

    # Preferred over AccountingSettings.ar_account when set
    default_ar_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="customers_default_ar",
        help_text="Default AR account used for this customer",
    )
    # Liability that holds money received before invoicing
    advance_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="customers_advance",
        help_text="Customer advances (deposits) account",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "name"])]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_customer_name"
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        for account in (self.default_ar_account, self.advance_account):
            if account and account.company_id != self.company_id:
                raise ValidationError(
                    "Customer accounts must belong to the same company"
                )
        # Only control accounts can be set as default AR
        if self.default_ar_account and not self.default_ar_account.is_control_account:
            raise ValidationError("Default AR account must be a control account")
        return super().clean()

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
