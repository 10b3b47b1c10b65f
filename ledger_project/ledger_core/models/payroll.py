from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .base import PostableDocument, StatusMachineMixin
from .company import Company

PAYROLL_STATUS = [
    ("open", "Open"),
    ("closed", "Closed"),
    ("paid", "Paid"),
]


class PayrollPeriod(StatusMachineMixin, PostableDocument):
    """Aggregated payroll for one period; only closed/paid periods post."""

    SOURCE_TYPE = "payroll"
    TRANSITIONS = {
        "open": ["closed", "paid"],
        "closed": ["paid"],
        "paid": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=100)
    start_date = models.DateField()
    end_date = models.DateField()
    payment_date = models.DateField(null=True, blank=True)
    total_gross = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Statutory withholdings (social security, income tax, ...)
    total_deductions = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_net = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=10, choices=PAYROLL_STATUS, default="open")

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "status"])]

    def __str__(self):
        return f"Payroll {self.name} [{self.status}]"

    @property
    def is_postable(self):
        return self.status in ("closed", "paid")

    def clean(self):
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValidationError("Start date must be before end date")
        for amount in (self.total_gross, self.total_deductions, self.total_net):
            if amount < 0:
                raise ValidationError("Payroll totals cannot be negative")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
