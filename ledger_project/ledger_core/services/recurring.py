"""
Recurring billing sweep.

process_pending_subscriptions() bills every active subscription that is due
and reports what happened to each one. Subscriptions are processed in
separate transactions: one that fails is reported and the sweep goes on.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone

from .. import conf
from ..exceptions import LedgerError
from ..models import Invoice, InvoiceLine, RecurringSubscription
from .audit_helper import log_action
from .numbering import next_number
from .posting import post_sale_invoice

logger = logging.getLogger(__name__)

MONTHS_BY_FREQUENCY = {"monthly": 1, "quarterly": 3, "yearly": 12}


def add_months(value: date, months: int) -> date:
    """Same day `months` later, clamped to the last day of a shorter month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_billing_date(current: date, frequency: str) -> date:
    if frequency == "weekly":
        return current + timedelta(weeks=1)
    try:
        return add_months(current, MONTHS_BY_FREQUENCY[frequency])
    except KeyError:
        raise ValueError(f"Unknown billing frequency '{frequency}'") from None


@dataclass
class SweepReport:
    processed: list = field(default_factory=list)  # invoice numbers
    expired: list = field(default_factory=list)  # subscription ids
    skipped: list = field(default_factory=list)
    failures: list = field(default_factory=list)  # (subscription id, message)
    # billed, but the journal entry was skipped or failed:
    # (invoice number, posting status, message)
    unposted: list = field(default_factory=list)

    def as_dict(self):
        return {
            "processed": self.processed,
            "expired": self.expired,
            "skipped": self.skipped,
            "failures": [list(failure) for failure in self.failures],
            "unposted": [list(row) for row in self.unposted],
        }


def _bill(subscription, today, actor):
    subscription = RecurringSubscription.objects.select_for_update().get(pk=subscription.pk)
    customer = subscription.customer
    invoice = Invoice.objects.create(
        company=subscription.company,
        customer=customer,
        document_number=next_number(
            subscription.company, "subscription_invoice", conf.subscription_prefix()
        ),
        date=today,
        due_date=today + timedelta(days=customer.payment_terms_days or 0),
        description=f"{subscription.service_name} ({subscription.next_billing_date:%Y-%m-%d})",
    )
    InvoiceLine.objects.create(
        company=subscription.company,
        invoice=invoice,
        description=subscription.service_name,
        quantity=1,
        unit_price=subscription.amount,
        tax_rate=subscription.tax_rate,
        account=subscription.account,
    )
    posting = post_sale_invoice(invoice, actor=actor)

    subscription.last_invoice = invoice
    subscription.last_billed_at = timezone.now()
    subscription.next_billing_date = next_billing_date(
        subscription.next_billing_date, subscription.frequency
    )
    subscription.save()
    log_action(
        action="bill_subscription",
        instance=subscription,
        actor=actor,
        changes={"invoice": invoice.document_number},
    )
    return invoice, posting.revenue


def process_pending_subscriptions(company, today=None, actor="") -> SweepReport:
    """
    Bill the company's due subscriptions once each.

    A subscription past its end_date is expired instead; zero-amount ones
    are skipped. A subscription several periods behind is billed once per
    sweep.
    """
    today = today or timezone.localdate()
    report = SweepReport()
    due = (
        RecurringSubscription.objects.for_company(company)
        .filter(status="active")
        .filter(Q(next_billing_date__lte=today) | Q(end_date__lt=today))
        .select_related("customer")
        .order_by("next_billing_date", "pk")
    )

    for subscription in due:
        try:
            with transaction.atomic():
                if subscription.end_date and subscription.end_date < today:
                    subscription.transition_to("expired")
                    report.expired.append(subscription.pk)
                    continue
                if subscription.amount <= 0:
                    report.skipped.append(subscription.pk)
                    continue
                invoice, revenue = _bill(subscription, today, actor)
                report.processed.append(invoice.document_number)
                if not revenue.is_posted:
                    report.unposted.append(
                        (invoice.document_number, revenue.status, revenue.message)
                    )
        except (LedgerError, ValidationError, DatabaseError) as exc:
            logger.error(
                "Billing %s failed: %s", subscription, exc,
                extra={"company": company.pk, "subscription": subscription.pk},
            )
            report.failures.append((subscription.pk, str(exc)))

    logger.info(
        "Recurring sweep: %d billed (%d not posted), %d expired, %d skipped, %d failed",
        len(report.processed), len(report.unposted), len(report.expired),
        len(report.skipped), len(report.failures),
        extra={"company": company.pk},
    )
    return report
