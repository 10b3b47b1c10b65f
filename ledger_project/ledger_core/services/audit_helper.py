from typing import Optional
from ..models import AuditLog, Company


def log_action(
    *,
    action: str,
    instance,
    actor: str = "",
    company: Optional[Company] = None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Safe to call multiple times (caller ensures idempotency).
    """
    if not company:
        company = getattr(instance, "company", None)

    return AuditLog.objects.create(
        company=company,
        actor=actor or "",
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
