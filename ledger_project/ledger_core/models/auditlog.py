from django.db import models
from ..managers import TenantManager
from .company import Company


# ---------- Audit / Event log ----------
class AuditLog(models.Model):
    """Traceability for postings, allocations and lifecycle changes."""

    # Nullable because some actions might not belong to a specific company
    company = models.ForeignKey(
        Company, null=True, blank=True, on_delete=models.SET_NULL
    )
    # Already-resolved identity passed in by the caller ("" for batch jobs)
    actor = models.CharField(max_length=150, blank=True, default="")
    # e.g. post, reverse, allocate, cancel, transition
    action = models.CharField(max_length=50)
    object_type = models.CharField(max_length=100)  # e.g. "Invoice"
    object_id = models.CharField(max_length=100)
    # before/after details, in JSON format
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "created_at"]),
            models.Index(fields=["company", "object_type", "object_id"]),
        ]

    def __str__(self):
        return (
            f"[{self.created_at:%Y-%m-%d %H:%M}] {self.actor} "
            f"{self.action} {self.object_type}({self.object_id})"
        )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
