import datetime
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from ..models import AccountingSettings, Company, Invoice, RecurringSubscription
from ..services import process_pending_subscriptions
from ..services.chart import seed_chart
from ..services.recurring import add_months, next_billing_date
from ..tasks import process_recurring_billing
from .base import LedgerTestCase


class BillingDateTests(LedgerTestCase):

    def test_month_arithmetic_clamps_to_month_end(self):
        self.assertEqual(add_months(datetime.date(2025, 1, 31), 1), datetime.date(2025, 2, 28))
        self.assertEqual(add_months(datetime.date(2024, 1, 31), 1), datetime.date(2024, 2, 29))
        self.assertEqual(add_months(datetime.date(2025, 11, 30), 3), datetime.date(2026, 2, 28))

    def test_frequencies(self):
        start = datetime.date(2025, 3, 15)
        self.assertEqual(next_billing_date(start, "weekly"), datetime.date(2025, 3, 22))
        self.assertEqual(next_billing_date(start, "monthly"), datetime.date(2025, 4, 15))
        self.assertEqual(next_billing_date(start, "quarterly"), datetime.date(2025, 6, 15))
        self.assertEqual(next_billing_date(start, "yearly"), datetime.date(2026, 3, 15))
        with self.assertRaises(ValueError):
            next_billing_date(start, "daily")


class RecurringSweepTests(LedgerTestCase):

    def subscribe(self, name="Hosting", amount="100.00", **kwargs):
        values = {
            "company": self.company,
            "customer": self.customer,
            "service_name": name,
            "amount": Decimal(amount),
            "tax_rate": Decimal("0.18"),
            "frequency": "monthly",
            "start_date": datetime.date(2025, 1, 15),
            "next_billing_date": self.today,
        }
        values.update(kwargs)
        return RecurringSubscription.objects.create(**values)

    def test_due_subscription_is_billed_and_rescheduled(self):
        subscription = self.subscribe()

        report = process_pending_subscriptions(self.company, today=self.today)

        self.assertEqual(report.processed, ["SUB-000001"])
        self.assertEqual(report.failures, [])
        self.assertEqual(report.unposted, [])
        subscription.refresh_from_db()
        self.assertEqual(subscription.next_billing_date, datetime.date(2025, 10, 15))
        invoice = subscription.last_invoice
        self.assertEqual(invoice.document_number, "SUB-000001")
        self.assertEqual(invoice.original_amount, Decimal("118.00"))
        self.assertEqual(invoice.posting_status, "posted")
        self.assertEqual(invoice.due_date, self.today + datetime.timedelta(days=30))
        self.assertIsNotNone(subscription.last_billed_at)

    def test_sweep_bills_each_subscription_once(self):
        self.subscribe(next_billing_date=datetime.date(2025, 6, 15))

        process_pending_subscriptions(self.company, today=self.today)
        again = process_pending_subscriptions(self.company, today=self.today)

        # three months behind, but one invoice per sweep
        self.assertEqual(len(again.processed), 1)
        self.assertEqual(Invoice.objects.count(), 2)

    def test_paused_future_expired_and_zero_amount(self):
        self.subscribe("Paused", status="paused")
        self.subscribe("Future", next_billing_date=datetime.date(2025, 12, 1))
        expired = self.subscribe("Ended", end_date=datetime.date(2025, 9, 1))
        free = self.subscribe("Free tier", amount="0.00")

        report = process_pending_subscriptions(self.company, today=self.today)

        self.assertEqual(report.processed, [])
        self.assertEqual(report.expired, [expired.pk])
        self.assertEqual(report.skipped, [free.pk])
        expired.refresh_from_db()
        self.assertEqual(expired.status, "expired")
        self.assertFalse(Invoice.objects.exists())

    def test_one_failure_does_not_stop_the_sweep(self):
        broken = self.subscribe("Broken")
        self.subscribe("Healthy")
        other = Company.objects.create(name="Other", slug="other")
        foreign_sales = seed_chart(other)["4000"]
        # bypass model validation to simulate bad data
        RecurringSubscription.objects.filter(pk=broken.pk).update(account=foreign_sales)

        report = process_pending_subscriptions(self.company, today=self.today)

        self.assertEqual(len(report.processed), 1)
        self.assertEqual([pk for pk, _ in report.failures], [broken.pk])
        broken.refresh_from_db()
        # nothing of the failed attempt was kept
        self.assertEqual(broken.next_billing_date, self.today)
        self.assertIsNone(broken.last_invoice)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_unposted_invoice_is_reported(self):
        settings = AccountingSettings.for_company(self.company)
        settings.sales_tax_account = None
        settings.save()
        self.subscribe()

        report = process_pending_subscriptions(self.company, today=self.today)

        # billed, but its journal entry was skipped
        self.assertEqual(report.processed, ["SUB-000001"])
        self.assertEqual(report.failures, [])
        self.assertEqual(len(report.unposted), 1)
        number, status, message = report.unposted[0]
        self.assertEqual((number, status), ("SUB-000001", "skipped"))
        self.assertIn("sales_tax_account", message)
        self.assertEqual(report.as_dict()["unposted"][0][:2], ["SUB-000001", "skipped"])
        self.assertEqual(Invoice.objects.get().posting_status, "skipped")

    def test_celery_task_returns_report(self):
        self.subscribe()

        result = process_recurring_billing.apply(
            args=(self.company.pk, self.today.isoformat())
        ).get()

        self.assertEqual(result["processed"], ["SUB-000001"])
        self.assertEqual(result["failures"], [])

    def test_management_command(self):
        self.subscribe()
        out = StringIO()

        call_command(
            "process_recurring_billing",
            "--company", self.company.slug,
            "--date", self.today.isoformat(),
            stdout=out,
        )

        self.assertIn("Billed SUB-000001", out.getvalue())
        self.assertIn("1 billed, 0 expired, 0 skipped, 0 failed", out.getvalue())


@pytest.mark.django_db
def test_create_demo_tenant_seeds_chart_and_settings():
    out = StringIO()
    call_command("create_demo_tenant", "--company-name", "Demo Shop", stdout=out)

    company = Company.objects.get(slug="demo-shop")
    settings = company.accounting_settings
    assert settings.ar_account.code == "1200"
    assert settings.sales_tax_account.code == "2200"
    assert "Created company: Demo Shop" in out.getvalue()


@pytest.mark.django_db
def test_command_rejects_unknown_company():
    from django.core.management.base import CommandError

    with pytest.raises(CommandError):
        call_command("process_recurring_billing", "--company", "nope")
