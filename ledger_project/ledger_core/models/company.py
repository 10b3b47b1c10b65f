from django.db import models


# ---------- Tenant / Company ----------
class Company(models.Model):
    """Tenant. Every posting engine call is scoped by one of these."""

    name = models.CharField(max_length=200)
    # URL-friendly identifier, used by management commands and tasks
    slug = models.SlugField(max_length=80, unique=True)
    # Single functional currency; no conversion happens in the engine
    currency_code = models.CharField(max_length=10, default="USD")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name
