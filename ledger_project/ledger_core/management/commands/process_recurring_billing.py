from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from ledger_core.models import Company
from ledger_core.services.recurring import process_pending_subscriptions


class Command(BaseCommand):
    help = "Bill every due recurring subscription of a company."

    def add_arguments(self, parser):
        parser.add_argument("--company", required=True, help="Company slug.")
        parser.add_argument(
            "--date", default=None, help="Billing date (YYYY-MM-DD), defaults to today."
        )
        parser.add_argument("--actor", default="manage.py")

    def handle(self, *args, **options):
        try:
            company = Company.objects.get(slug=options["company"])
        except Company.DoesNotExist:
            raise CommandError(f"No company with slug '{options['company']}'")

        today = None
        if options["date"]:
            today = parse_date(options["date"])
            if today is None:
                raise CommandError(f"Invalid date '{options['date']}'")

        report = process_pending_subscriptions(company, today=today, actor=options["actor"])

        for number in report.processed:
            self.stdout.write(self.style.SUCCESS(f"Billed {number}"))
        for subscription_id, message in report.failures:
            self.stdout.write(self.style.ERROR(f"Subscription {subscription_id}: {message}"))
        for number, status, message in report.unposted:
            self.stdout.write(self.style.WARNING(f"{number} not posted ({status}): {message}"))
        self.stdout.write(
            f"{len(report.processed)} billed, {len(report.expired)} expired, "
            f"{len(report.skipped)} skipped, {len(report.failures)} failed"
        )
