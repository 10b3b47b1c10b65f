from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .base import StatusMachineMixin
from .company import Company
from .customer import Customer

FREQUENCY_CHOICES = [
    ("weekly", "Weekly"),
    ("monthly", "Monthly"),
    ("quarterly", "Quarterly"),
    ("yearly", "Yearly"),
]

SUBSCRIPTION_STATUS = [
    ("active", "Active"),
    ("paused", "Paused"),
    ("cancelled", "Cancelled"),
    ("expired", "Expired"),  # end_date passed
]


class RecurringSubscription(StatusMachineMixin, models.Model):
    """A service billed to a customer on a fixed cadence."""

    TRANSITIONS = {
        "active": ["paused", "cancelled", "expired"],
        "paused": ["active", "cancelled"],
        "cancelled": [],
        "expired": [],
    }

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name="subscriptions"
    )
    service_name = models.CharField(max_length=200)
    amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=6, decimal_places=4, default=Decimal("0"))
    # Sales account override for the generated invoice line
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT, related_name="+"
    )
    frequency = models.CharField(max_length=10, choices=FREQUENCY_CHOICES)
    start_date = models.DateField()
    next_billing_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=10, choices=SUBSCRIPTION_STATUS, default="active"
    )
    last_invoice = models.ForeignKey(
        "Invoice", null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    last_billed_at = models.DateTimeField(null=True, blank=True)

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "status", "next_billing_date"])]

    def __str__(self):
        return f"{self.service_name} ({self.get_frequency_display()})"

    def clean(self):
        if self.customer_id and self.customer.company_id != self.company_id:
            raise ValidationError("Customer must belong to the same company.")
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")
        if self.amount < 0:
            raise ValidationError("Subscription amount cannot be negative")
        if self.end_date and self.end_date < self.start_date:
            raise ValidationError("end_date must not be before start_date")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
