import hashlib
import json
from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone
from .. import conf
from ..amounts import to_money
from ..exceptions import (AlreadyPostedDifferentPayload, InvalidAccountError,
                          InvalidTransitionError, UnbalancedEntryError)
from ..managers import TenantManager
from .account import Account
from .company import Company

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized, append-only from here on
]


def compute_fingerprint(company_id, entry_date, lines):
    """sha256 of a deterministic JSON of what matters for posting.

    Same lines, same date → same string, so a repeat post of an unchanged
    entry can be recognised. `lines` yields (account_id, debit, credit, desc).
    """
    payload = {
        "company": company_id,
        "date": entry_date.isoformat(),
        "lines": [
            {
                "acct": account_id,
                "debit": str(debit),
                "credit": str(credit),
                "desc": desc or "",
            }
            for account_id, debit, credit, desc in lines
        ],
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return hashlib.sha256(raw.encode()).hexdigest()


# ---------- Journal (Header) & JournalLine ----------
class JournalEntry(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # Human-readable and unique per company ("JE-000042", "INV-7-COGS")
    entry_number = models.CharField(max_length=64)
    entry_date = models.DateField()
    reference = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=JOURNAL_STATUS, default="draft")
    posted_at = models.DateTimeField(null=True, blank=True)
    # Identity resolution happens upstream; we only keep who asked for it
    created_by = models.CharField(max_length=150, blank=True, default="")

    # Where the entry came from (invoice, advance, payroll, ...)
    source_type = models.CharField(max_length=50, blank=True, default="")
    source_id = models.BigIntegerField(null=True, blank=True)
    # Fingerprint-based idempotency (safe to post twice if nothing changed)
    posting_fingerprint = models.CharField(max_length=64, blank=True, default="")

    # Stored on posting so listings don't need to aggregate lines
    total_debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Corrections are new entries pointing at the one they offset
    reversal_of = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversed_by",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "entry_date"]),
            models.Index(fields=["company", "status"]),
            models.Index(fields=["company", "source_type", "source_id"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "entry_number"], name="uq_je_company_number"
            )
        ]

    def __str__(self):
        return f"JE {self.entry_number} {self.entry_date} [{self.status}]"

    @property
    def is_posted(self):
        return self.status == "posted"

    # Aggregate all debit and credit amounts across entry's lines
    def compute_totals(self):
        """Return debits, credits sums for lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit_amount"),
            total_credit=models.Sum("credit_amount"),
        )
        # SQLite sums decimals as floats; quantize before comparing or storing
        return (
            to_money(aggs["total_debit"] or Decimal("0.00")),
            to_money(aggs["total_credit"] or Decimal("0.00")),
        )

    def is_balanced(self):
        debit, credit = self.compute_totals()
        return abs(debit - credit) < conf.balance_tolerance()

    def _fingerprint(self):
        lines = [
            (line.account_id, line.debit_amount, line.credit_amount, line.description)
            for line in self.lines.order_by("line_number", "id")
        ]
        return compute_fingerprint(self.company_id, self.entry_date, lines)

    @transaction.atomic
    def post(self, actor=""):
        """
        Validate and finalize the entry.

        Raises InvalidAccountError for non-postable accounts and
        UnbalancedEntryError when debits and credits disagree. Posting an
        already-posted entry is a no-op if nothing changed.
        """
        # Lock row + lines to prevent concurrent modifications
        je = JournalEntry.objects.select_for_update().get(pk=self.pk)
        lines = list(
            je.lines.select_for_update().select_related("account")
            .order_by("line_number", "id")
        )

        fp = je._fingerprint()
        if je.status == "posted":
            if je.posting_fingerprint == fp:
                return je
            raise AlreadyPostedDifferentPayload(
                f"Journal {je.entry_number} already posted with different payload."
            )

        if not lines:
            raise UnbalancedEntryError(
                Decimal("0.00"), Decimal("0.00"),
                "JournalEntry must have at least one JournalLine.",
            )

        for line in lines:
            account = line.account
            # every line must belong to same company as journal
            if line.company_id != je.company_id or account.company_id != je.company_id:
                raise ValidationError(
                    "All journal lines must belong to same company as journal."
                )
            if not account.is_active:
                raise InvalidAccountError(account, "account is inactive")
            if not account.allow_posting:
                raise InvalidAccountError(account, "account does not allow posting")
            if not account.is_leaf:
                raise InvalidAccountError(account, "account is not a leaf account")

        # Recompute totals fresh from DB & ignore any stale cached values
        td, tc = je.compute_totals()
        if abs(td - tc) >= conf.balance_tolerance():
            raise UnbalancedEntryError(td, tc)

        je.status = "posted"
        je.posted_at = timezone.now()
        je.total_debit = td
        je.total_credit = tc
        je.posting_fingerprint = fp
        if actor:
            je.created_by = actor
        je.save()

        je.lines.update(is_posted=True)
        return je

    def transition_to(self, new_status, actor=""):
        allowed = {
            "draft": ["posted"],
            "posted": [],  # reversal is a new entry, never a status change
        }
        if new_status not in allowed.get(self.status, []):
            raise InvalidTransitionError(self.status, new_status)
        return self.post(actor=actor)

    def save(self, *args, **kwargs):
        if self.pk:
            orig = JournalEntry.objects.filter(pk=self.pk).first()
            # Posted entries are append-only audit records
            if orig and orig.status == "posted":
                raise ValidationError(
                    "Cannot modify a posted JournalEntry. It is immutable."
                )
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.status == "posted":
            raise ValidationError(
                "Cannot delete a posted JournalEntry; post a reversal instead."
            )
        return super().delete(*args, **kwargs)


class JournalLine(models.Model):
    """One debit or credit against a single account."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    journal = models.ForeignKey(
        JournalEntry, on_delete=models.CASCADE, related_name="lines"
    )
    line_number = models.PositiveIntegerField()
    # can't delete account if lines exist → PROTECT
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    description = models.CharField(max_length=400, blank=True, default="")
    debit_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # audit / immutability marker (populated when journal posted)
    is_posted = models.BooleanField(default=False)

    objects = TenantManager()

    class Meta:
        ordering = ["journal", "line_number"]
        indexes = [
            models.Index(fields=["company", "account"]),
            models.Index(fields=["company", "journal"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["journal", "line_number"], name="uq_jl_journal_line_number"
            ),
            models.CheckConstraint(
                condition=models.Q(debit_amount__gte=0) & models.Q(credit_amount__gte=0),
                name="jl_non_negative_amounts",
            ),
            # exactly one side carries the amount
            models.CheckConstraint(
                condition=(
                    (models.Q(debit_amount__gt=0) & models.Q(credit_amount=0))
                    | (models.Q(debit_amount=0) & models.Q(credit_amount__gt=0))
                ),
                name="jl_debit_xor_credit",
            ),
        ]

    def __str__(self):
        return (
            f"{self.journal_id} | {self.account.code} | "
            f"D:{self.debit_amount} C:{self.credit_amount}"
        )

    def clean(self):
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if self.debit_amount > 0 and self.credit_amount > 0:
            raise ValidationError(
                "JournalLine should not have both debit and credit > 0"
            )
        if self.debit_amount == 0 and self.credit_amount == 0:
            raise ValidationError(
                "JournalLine requires a non-0 amount on either debit or credit"
            )

        if self.journal_id and self.company_id != self.journal.company_id:
            raise ValidationError(
                "JournalLine.company must equal JournalEntry.company"
            )

        # Lines of a posted journal can't be added or changed
        if self.journal_id and JournalEntry.objects.filter(
            pk=self.journal_id, status="posted"
        ).exists():
            raise ValidationError(
                "Cannot add or modify JournalLine: parent JournalEntry is posted."
            )

    def delete(self, *args, **kwargs):
        if self.journal_id and JournalEntry.objects.filter(
            pk=self.journal_id, status="posted"
        ).exists():
            raise ValidationError(
                "Cannot delete JournalLine: parent JournalEntry is posted."
            )
        return super().delete(*args, **kwargs)

    def save(self, *args, **kwargs):
        if not self.company_id and self.journal_id:
            self.company_id = self.journal.company_id
        self.debit_amount = to_money(self.debit_amount)
        self.credit_amount = to_money(self.credit_amount)
        self.full_clean()
        return super().save(*args, **kwargs)
