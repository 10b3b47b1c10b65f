from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..exceptions import InvalidTransitionError

POSTING_STATUS = [
    ("pending", "Pending"),  # nothing attempted yet
    ("posted", "Posted"),  # journal entry exists
    ("skipped", "Skipped"),  # missing account configuration
    ("failed", "Failed"),  # rule produced an invalid entry
]


class StatusMachineMixin:
    """Lifecycle guard: subclasses list allowed moves in TRANSITIONS."""

    TRANSITIONS = {}

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, [])

    def check_transition(self, new_status):
        if not self.can_transition(new_status):
            raise InvalidTransitionError(self.status, new_status)

    def transition_to(self, new_status):
        self.check_transition(new_status)
        self.status = new_status
        self.save()
        return self


class PostableDocument(models.Model):
    """Business document that produces a journal entry as a side effect.

    The document is authoritative; the entry is derived and may be
    re-posted after a skip or failure.
    """

    journal_entry = models.ForeignKey(
        "JournalEntry",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="+",
    )
    posting_status = models.CharField(
        max_length=10, choices=POSTING_STATUS, default="pending"
    )
    posting_message = models.TextField(blank=True, default="")

    # Used as JournalEntry.source_type
    SOURCE_TYPE = ""

    class Meta:
        abstract = True

    @property
    def source_type(self):
        return self.SOURCE_TYPE

    def record_posting(self, result):
        """Store the outcome of a PostingResult on the document."""
        self.posting_status = result.status
        self.posting_message = result.message
        if result.entry is not None:
            self.journal_entry = result.entry
        self.save(
            update_fields=["posting_status", "posting_message", "journal_entry"]
        )


class AllocatableDocument(StatusMachineMixin, PostableDocument):
    """
    Document with an outstanding balance that payments/advances settle.

    applied_amount + balance_amount == original_amount, except once
    cancelled, where both are zero and original_amount is kept for audit.
    Only ledger_core.services.allocation (and recalc_totals on documents
    nothing was applied to yet) writes these three fields; save() refuses
    any other change to them or to the balance-derived status.
    """

    BALANCE_FIELDS = ("original_amount", "applied_amount", "balance_amount", "status")

    document_number = models.CharField(max_length=64)
    original_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    applied_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    balance_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Status once the balance reaches zero ("paid" or "applied")
    SETTLED_STATUS = "paid"

    class Meta:
        abstract = True

    @property
    def is_cancelled(self):
        return self.status == "cancelled"

    @property
    def party(self):
        return getattr(self, "customer", None) or getattr(self, "supplier", None)

    def derive_status(self):
        if self.is_cancelled:
            return "cancelled"
        if self.balance_amount == 0:
            return self.SETTLED_STATUS
        if self.applied_amount > 0:
            return "partial"
        return "pending"

    def clean(self):
        # A new document starts fully outstanding
        if self._state.adding and not self.applied_amount and not self.balance_amount:
            self.balance_amount = self.original_amount
        if self.balance_amount < 0:
            raise ValidationError("Balance amount cannot be negative")
        if self.applied_amount < 0:
            raise ValidationError("Applied amount cannot be negative")
        if self.is_cancelled:
            if self.applied_amount != 0 or self.balance_amount != 0:
                raise ValidationError(
                    "Cancelled documents carry no applied or outstanding amount"
                )
        elif self.applied_amount + self.balance_amount != self.original_amount:
            raise ValidationError(
                "applied_amount + balance_amount must equal original_amount"
            )

    def allow_balance_write(self):
        """Let the next save() change the balance fields."""
        self._balance_write = True

    def _check_balance_write(self, update_fields):
        if update_fields is not None and not set(update_fields) & set(self.BALANCE_FIELDS):
            return
        stored = (
            type(self)._base_manager.filter(pk=self.pk)
            .values(*self.BALANCE_FIELDS).first()
        )
        if stored is None:
            return
        changed = [f for f in self.BALANCE_FIELDS if getattr(self, f) != stored[f]]
        if changed:
            raise ValidationError(
                f"{', '.join(changed)} of {self} change only through balance allocation"
            )

    def save(self, *args, **kwargs):
        allowed = self.__dict__.pop("_balance_write", False)
        if not allowed and not self._state.adding:
            self._check_balance_write(kwargs.get("update_fields"))
        return super().save(*args, **kwargs)
