from django.core.exceptions import ValidationError
from django.db import models
from ..exceptions import MissingConfigurationError
from ..managers import TenantManager
from .account import Account
from .company import Company


def _account_fk(help_text):
    return models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
        help_text=help_text,
    )


# ---------- Per-tenant posting configuration ----------
class AccountingSettings(models.Model):
    """Global default accounts the posting rules fall back to.

    Party-specific accounts (customer AR, supplier AP, advance accounts)
    take precedence where a rule supports them.
    """

    company = models.OneToOneField(
        Company, on_delete=models.CASCADE, related_name="accounting_settings"
    )

    ar_account = _account_fk("Default accounts receivable")
    ap_account = _account_fk("Default accounts payable")
    sales_account = _account_fk("Default sales income")
    sales_tax_account = _account_fk("Sales tax payable")
    # When empty, purchase tax is folded into each line's expense account
    purchase_tax_account = _account_fk("Recoverable purchase tax")
    inventory_account = _account_fk("Inventory asset")
    cogs_account = _account_fk("Cost of goods sold")
    sales_returns_account = _account_fk("Sales returns (contra income)")
    purchase_returns_account = _account_fk("Purchase returns (contra expense)")
    cash_account = _account_fk("Cash on hand, used for cash payments")
    ap_bank_account = _account_fk("Bank used for supplier payments by default")
    salaries_expense_account = _account_fk("Salaries expense")
    withholdings_payable_account = _account_fk("Payroll withholdings payable")
    payroll_payable_account = _account_fk("Net payroll payable")

    objects = TenantManager()

    class Meta:
        verbose_name_plural = "accounting settings"

    def __str__(self):
        return f"Accounting settings for {self.company}"

    @classmethod
    def for_company(cls, company):
        """Stored settings, or an empty unsaved row so lookups fail cleanly."""
        found = cls.objects.filter(company=company).first()
        return found or cls(company=company)

    def require(self, name):
        """Return the configured account or raise MissingConfigurationError."""
        account = getattr(self, name)
        if account is None:
            raise MissingConfigurationError(name)
        return account

    def clean(self):
        for field in self._meta.get_fields():
            if not isinstance(field, models.ForeignKey) or field.name == "company":
                continue
            account = getattr(self, field.name)
            if account is not None and account.company_id != self.company_id:
                raise ValidationError(
                    f"{field.name} must belong to the same company."
                )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
