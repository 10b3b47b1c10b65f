from dataclasses import dataclass
from typing import Optional


@dataclass
class PostingResult:
    """
    Outcome of a best-effort journal posting.

    status is one of:
    - "posted": entry holds the posted JournalEntry
    - "skipped": configuration is missing; fix it and re-post
    - "failed": the rule produced an invalid entry (error holds why)

    Usage:
        result = post_advance(advance)
        if result.is_posted:
            entry = result.entry
        elif result.is_skipped:
            warn(result.reason)
    """

    status: str
    entry: Optional[object] = None
    reason: str = ""
    error: Optional[Exception] = None

    @classmethod
    def posted(cls, entry):
        return cls(status="posted", entry=entry)

    @classmethod
    def skipped(cls, reason, error=None):
        return cls(status="skipped", reason=reason, error=error)

    @classmethod
    def failed(cls, error):
        return cls(status="failed", reason=str(error), error=error)

    @property
    def is_posted(self):
        return self.status == "posted"

    @property
    def is_skipped(self):
        return self.status == "skipped"

    @property
    def is_failed(self):
        return self.status == "failed"

    @property
    def message(self):
        return self.reason or (str(self.error) if self.error else "")
