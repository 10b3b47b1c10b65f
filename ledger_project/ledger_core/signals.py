from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import (Account, Advance, Allocation, Bill, Invoice, JournalEntry,
                     JournalLine, Payment)

""" Block invoice deletion once anything was applied or posted."""


# pre_delete fires just before Django deletes a model instance
@receiver(pre_delete, sender=Invoice)
def prevent_delete_invoice_with_allocations(sender, instance, **kwargs):
    # Check if any Allocation rows point to this invoice
    if Allocation.objects.filter(invoice=instance).exists():
        raise ValidationError("Cannot delete invoice with applied payments.")
    if instance.posting_status == "posted":
        raise ValidationError("Cannot delete a posted invoice; cancel it instead.")


"""Block bill deletion if any payments are applied."""


@receiver(pre_delete, sender=Bill)
def prevent_delete_bill_with_allocations(sender, instance, **kwargs):
    if Allocation.objects.filter(bill=instance).exists():
        raise ValidationError("Cannot delete bill with applied payments.")
    if instance.posting_status == "posted":
        raise ValidationError("Cannot delete a posted bill; cancel it instead.")


"""Advances and receipts keep their allocations for audit."""


@receiver(pre_delete, sender=Advance)
def prevent_delete_applied_advance(sender, instance, **kwargs):
    if Allocation.objects.filter(advance=instance).exists():
        raise ValidationError("Cannot delete an advance that was applied.")


@receiver(pre_delete, sender=Payment)
def prevent_delete_applied_payment(sender, instance, **kwargs):
    if Allocation.objects.filter(payment=instance).exists():
        raise ValidationError("Cannot delete a payment that was applied.")


"""Block deletion if account has ever been used in a journal line."""


@receiver(pre_delete, sender=Account)
def prevent_delete_account_with_journal_lines(sender, instance, **kwargs):
    if JournalLine.objects.filter(account=instance).exists():
        raise ValidationError("Cannot delete account used in journal lines.")


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_posted_journal(sender, instance, **kwargs):
    # Queryset deletes skip JournalEntry.delete(); this covers them
    if instance.status == "posted":
        raise ValidationError("Cannot delete a posted journal entry; reverse it instead.")
