from ..exceptions import MissingConfigurationError
from ..models import Account, AccountingSettings


def list_accounts(company, *, postable_only=False, ac_type=None):
    """Chart of accounts for a tenant, ordered by code."""
    qs = Account.objects.for_company(company).order_by("code")
    if ac_type:
        qs = qs.filter(ac_type=ac_type)
    if postable_only:
        qs = qs.filter(is_active=True, allow_posting=True, children__isnull=True)
    return list(qs)


# ----------------------------
# Account resolution for posting rules
# Party-specific accounts win over global defaults
# ----------------------------
def receivable_account(settings: AccountingSettings, customer):
    if customer is not None and customer.default_ar_account_id:
        return customer.default_ar_account
    return settings.require("ar_account")


def payable_account(settings: AccountingSettings, supplier):
    if supplier is not None and supplier.default_ap_account_id:
        return supplier.default_ap_account
    return settings.require("ap_account")


def advance_account(party):
    account = getattr(party, "advance_account", None)
    if account is None:
        raise MissingConfigurationError(
            "advance_account", f"{party} has no advance account configured"
        )
    return account


def settlement_account(settings: AccountingSettings, payment_method, bank_account,
                       fallback=None):
    """Ledger account money moves through for a payment method.

    The selected bank account wins; cash falls back to the cash account;
    `fallback` names a setting to use when nothing was selected.
    """
    if bank_account is not None:
        if bank_account.ledger_account_id is None:
            raise MissingConfigurationError(
                "bank_account.ledger_account",
                f"Bank account {bank_account} has no ledger account",
            )
        return bank_account.ledger_account
    if payment_method == "cash":
        return settings.require("cash_account")
    if fallback:
        return settings.require(fallback)
    raise MissingConfigurationError(
        "bank_account",
        f"No bank account selected for payment method '{payment_method}'",
    )


def sales_account_for(settings: AccountingSettings, line):
    if line.account_id:
        return line.account
    item = line.item
    if item is not None and item.sales_account_id:
        return item.sales_account
    return settings.require("sales_account")


def inventory_account_for(settings: AccountingSettings, item):
    if item.inventory_account_id:
        return item.inventory_account
    return settings.require("inventory_account")


def cogs_account_for(settings: AccountingSettings, item):
    if item.cogs_account_id:
        return item.cogs_account
    return settings.require("cogs_account")


def expense_account_for(line):
    if line.account_id:
        return line.account
    item = line.item
    if item is not None and item.purchase_account_id:
        return item.purchase_account
    raise MissingConfigurationError(
        "expense_account",
        f"Line '{line.description or item}' has no expense account",
    )


# ----------------------------
# Starter chart of accounts
# (code, name, type, parent code, AccountingSettings field)
# ----------------------------
STARTER_CHART = [
    ("1000", "Current assets", "asset", None, None),
    ("1100", "Cash on hand", "asset", "1000", "cash_account"),
    ("1110", "Main bank account", "asset", "1000", "ap_bank_account"),
    ("1200", "Accounts receivable", "asset", "1000", "ar_account"),
    ("1300", "Inventory", "asset", "1000", "inventory_account"),
    ("1400", "Recoverable purchase tax", "asset", "1000", None),
    ("1500", "Supplier advances", "asset", "1000", None),
    ("2000", "Current liabilities", "liability", None, None),
    ("2100", "Accounts payable", "liability", "2000", "ap_account"),
    ("2200", "Sales tax payable", "liability", "2000", "sales_tax_account"),
    ("2300", "Customer advances", "liability", "2000", None),
    ("2400", "Payroll withholdings", "liability", "2000", "withholdings_payable_account"),
    ("2500", "Salaries payable", "liability", "2000", "payroll_payable_account"),
    ("3000", "Opening balance equity", "equity", None, None),
    ("4000", "Sales", "income", None, "sales_account"),
    ("4100", "Sales returns", "income", None, "sales_returns_account"),
    ("5000", "Cost of goods sold", "expense", None, "cogs_account"),
    ("5100", "Purchase returns", "expense", None, "purchase_returns_account"),
    ("6000", "Salaries expense", "expense", None, "salaries_expense_account"),
    ("6100", "Office supplies", "expense", None, None),
]


HEADER_CODES = ("1000", "2000")


def seed_chart(company, *, configure=True):
    """
    Create the starter chart for `company` (idempotent by code) and,
    with configure=True, point AccountingSettings at it.

    Returns {code: Account}.
    """
    accounts = {}
    for code, name, ac_type, parent_code, _ in STARTER_CHART:
        account, _ = Account.objects.get_or_create(
            company=company,
            code=code,
            defaults={
                "name": name,
                "ac_type": ac_type,
                "parent": accounts.get(parent_code),
                "allow_posting": code not in HEADER_CODES,
                "is_control_account": code in ("1200", "2100"),
            },
        )
        accounts[code] = account

    if configure:
        settings, _ = AccountingSettings.objects.get_or_create(company=company)
        for code, _, _, _, setting in STARTER_CHART:
            if setting:
                setattr(settings, setting, accounts[code])
        settings.save()
    return accounts
