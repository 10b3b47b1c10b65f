import logging

from celery import shared_task
from django.utils.dateparse import parse_date

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def process_recurring_billing(company_id, today=None):
    """
    Run the recurring billing sweep for one company.

    `today` is an ISO date string (task arguments travel as JSON).
    Returns the sweep report as a dict.
    """
    # import lazily to avoid circular imports at module import time
    from .models import Company
    from .services.recurring import process_pending_subscriptions

    company = Company.objects.get(pk=company_id)
    report = process_pending_subscriptions(
        company, today=parse_date(today) if today else None, actor="celery"
    )
    return report.as_dict()
