from django.db import models


# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a company
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_company(self, company):
        return self.filter(company=company)

    def active(self, company):
        return self.filter(company=company, is_active=True)


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    """Every tenant-owned model gets .for_company() / .active() on objects."""

    use_in_migrations = True
