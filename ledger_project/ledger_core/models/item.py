from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .company import Company

MOVEMENT_TYPES = [
    ("entry", "Entry"),  # receipt into stock, may revise average cost
    ("exit", "Exit"),  # sale/consumption at current average cost
]


# ---------- Items ----------
class Item(models.Model):
    """
    Something a company sells and purchases.

    current_stock and average_cost are a cached projection of the item's
    StockMovement history; only ledger_core.services.costing writes them.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    sku = models.CharField(max_length=80, null=True, blank=True)
    name = models.CharField(max_length=200)
    # Services are billed but never stocked
    is_inventory = models.BooleanField(default=True)

    # Per-item account overrides; AccountingSettings supplies the defaults
    sales_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="items_sales_account",
    )
    purchase_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="items_purchase_account",
        help_text="Expense account for non-stock purchases",
    )
    inventory_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="items_inventory_account",
    )
    cogs_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="items_cogs_account",
    )

    current_stock = models.DecimalField(
        max_digits=14, decimal_places=4, default=Decimal("0"))
    average_cost = models.DecimalField(
        max_digits=18, decimal_places=6, default=Decimal("0"))
    default_unit_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00"))
    last_purchase_price = models.DecimalField(
        max_digits=18, decimal_places=6, null=True, blank=True)
    last_purchase_date = models.DateField(null=True, blank=True)

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "name"])]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "sku"], name="uq_company_item_sku"
            ),
            models.CheckConstraint(
                condition=models.Q(average_cost__gte=0),
                name="item_average_cost_non_negative",
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        for account in (
            self.sales_account,
            self.purchase_account,
            self.inventory_account,
            self.cogs_account,
        ):
            if account and account.company_id != self.company_id:
                raise ValidationError(
                    "Item accounts must belong to the same company as the item."
                )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class StockMovement(models.Model):
    """Immutable audit record of one stock change."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=5, choices=MOVEMENT_TYPES)
    quantity = models.DecimalField(max_digits=14, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=18, decimal_places=6)
    total_cost = models.DecimalField(max_digits=18, decimal_places=2)
    movement_date = models.DateField()
    # e.g. ("purchase_order", 12) with reference "PO PO-0012"
    source_type = models.CharField(max_length=50, blank=True, default="")
    source_id = models.BigIntegerField(null=True, blank=True)
    reference = models.CharField(max_length=200, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["company", "item"]),
            models.Index(fields=["company", "source_type", "source_id"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0), name="sm_quantity_positive"
            ),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity} x {self.item_id} @ {self.unit_cost}"

    @property
    def signed_quantity(self):
        return self.quantity if self.movement_type == "entry" else -self.quantity

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Stock movements are immutable.")
        if self.item_id and self.item.company_id != self.company_id:
            raise ValidationError("Movement item must belong to the same company.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Stock movements cannot be deleted.")
