from django.db import models
from ..managers import TenantManager
from .company import Company


class DocumentSequence(models.Model):
    """Per-company counter behind generated entry/document numbers."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=40)  # e.g. "journal", "advance"
    next_value = models.PositiveBigIntegerField(default=1)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_sequence_name"
            )
        ]

    def __str__(self):
        return f"{self.company_id}:{self.name}={self.next_value}"
