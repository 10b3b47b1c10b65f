from django.db import IntegrityError, transaction
from ..models import DocumentSequence


def next_sequence_value(company, name: str) -> int:
    """
    Allocate the next sequence value for a company/name pair.
    Uses select_for_update to avoid concurrent duplicates.
    """
    with transaction.atomic():
        try:
            seq = DocumentSequence.objects.select_for_update().get(
                company=company, name=name
            )
        except DocumentSequence.DoesNotExist:
            try:
                with transaction.atomic():
                    seq = DocumentSequence.objects.create(
                        company=company, name=name, next_value=1
                    )
            except IntegrityError:
                # someone else created it first
                seq = DocumentSequence.objects.select_for_update().get(
                    company=company, name=name
                )

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value"])
        return value


def next_number(company, name: str, prefix: str, width: int = 6) -> str:
    """e.g. next_number(company, "journal", "JE") -> "JE-000042" """
    return f"{prefix}-{next_sequence_value(company, name):0{width}d}"
