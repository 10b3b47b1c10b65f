from decimal import Decimal

from django.conf import settings


def balance_tolerance():
    return Decimal(str(getattr(settings, "LEDGER_BALANCE_TOLERANCE", "0.01")))


def entry_number_prefix():
    return getattr(settings, "LEDGER_ENTRY_NUMBER_PREFIX", "JE")


def return_prefix():
    return getattr(settings, "LEDGER_RETURN_PREFIX", "DEV")


def payroll_prefix():
    return getattr(settings, "LEDGER_PAYROLL_PREFIX", "NOM")


def subscription_prefix():
    return getattr(settings, "LEDGER_SUBSCRIPTION_PREFIX", "SUB")


def advance_prefix():
    return getattr(settings, "LEDGER_ADVANCE_PREFIX", "ANT")
