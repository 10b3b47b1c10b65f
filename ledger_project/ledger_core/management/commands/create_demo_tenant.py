import datetime
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils.text import slugify

from ledger_core.models import BankAccount, Company, Customer, Item, Supplier
from ledger_core.services.chart import seed_chart


class Command(BaseCommand):
    help = (
        "Create a demo tenant (company) with a starter chart of accounts, "
        "its accounting settings and a few parties to post against."
    )

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--company-name",  # Define flag
            default="Demo Company",
            help="Name of the demo company to create.",
        )
        parser.add_argument(
            "--currency", default="USD", help="Functional currency code."
        )

    @transaction.atomic
    def handle(self, *args, **options):
        company_name = options["company_name"]

        # Generate unique slug for company
        def unique_slug_for_company(name, max_tries=100):
            # "Test Ltd" → "test-ltd"; fall back to "company" if empty
            base = slugify(name) or "company"
            slug = base
            i = 1
            # If plain slug is taken, append -1, -2, etc.
            while Company.objects.filter(slug=slug).exists():
                slug = f"{base}-{i}"
                i += 1
                if i > max_tries:
                    raise RuntimeError("Couldn't generate unique slug")
            return slug

        # 1. Create company
        company = Company.objects.create(
            name=company_name,
            slug=unique_slug_for_company(company_name),
            currency_code=options["currency"],
        )
        self.stdout.write(self.style.SUCCESS(f"Created company: {company} ({company.slug})"))

        # 2. Chart of accounts + AccountingSettings
        accounts = seed_chart(company)
        self.stdout.write(
            self.style.SUCCESS(f"Created {len(accounts)} accounts and accounting settings")
        )

        # 3. Parties, bank and one stocked item
        Customer.objects.create(
            company=company,
            name=f"{company_name} customer",
            advance_account=accounts["2300"],
        )
        Supplier.objects.create(
            company=company,
            name=f"{company_name} supplier",
            advance_account=accounts["1500"],
        )
        BankAccount.objects.create(
            company=company,
            name="Main checking",
            ledger_account=accounts["1110"],
        )
        Item.objects.create(
            company=company,
            sku="DEMO-001",
            name="Demo product",
            is_inventory=True,
            default_unit_price=Decimal("25.00"),
        )
        self.stdout.write(self.style.SUCCESS("Created customer, supplier, bank account and item"))
        self.stdout.write(
            f"Run `manage.py process_recurring_billing --company {company.slug} "
            f"--date {datetime.date.today():%Y-%m-%d}` to bill its subscriptions."
        )
