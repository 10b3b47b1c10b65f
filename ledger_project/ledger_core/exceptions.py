class LedgerError(Exception):
    """Base class for posting and allocation engine failures."""
    pass


class UnbalancedEntryError(LedgerError):
    """Raised when debits and credits of an entry do not agree."""

    def __init__(self, total_debit, total_credit, message=None):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            message
            or f"Entry not balanced: debits={total_debit}, credits={total_credit}"
        )


class InvalidAccountError(LedgerError):
    """Raised when a line references an account that cannot take postings."""

    def __init__(self, account, reason):
        self.account = account
        self.reason = reason
        label = getattr(account, "code", None) or account
        super().__init__(f"Account {label} cannot be posted to: {reason}")


class OverApplicationError(LedgerError):
    """Raised when an amount exceeds the document's outstanding balance."""

    def __init__(self, requested, available, document=None):
        self.requested = requested
        self.available = available
        self.document = document
        super().__init__(
            f"Cannot apply {requested}: only {available} outstanding"
        )


class InvalidAmountError(LedgerError):
    """Raised for zero or negative monetary amounts."""

    def __init__(self, amount, message=None):
        self.amount = amount
        super().__init__(message or f"Amount must be greater than zero, got {amount}")


class InvalidQuantityError(LedgerError):
    """Raised for zero or negative stock quantities."""

    def __init__(self, quantity, message=None):
        self.quantity = quantity
        super().__init__(
            message or f"Quantity must be greater than zero, got {quantity}"
        )


class InsufficientStockError(InvalidQuantityError):
    """Raised when an exit would take stock below zero."""

    def __init__(self, item, requested, available):
        self.item = item
        self.requested = requested
        self.available = available
        super().__init__(
            requested,
            f"Cannot take {requested} of {item}: only {available} in stock",
        )


class InvalidTransitionError(LedgerError):
    """Raised when a document is moved to a state its lifecycle forbids."""

    def __init__(self, current, requested, message=None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot go from {current} to {requested}")


class CancellationNotAllowedError(InvalidTransitionError):
    """Raised when cancelling a document that already has applications."""

    def __init__(self, document, applied_amount):
        self.document = document
        self.applied_amount = applied_amount
        super().__init__(
            document.status,
            "cancelled",
            f"{document} has {applied_amount} applied; "
            "reverse its applications before cancelling",
        )


class MissingConfigurationError(LedgerError):
    """Raised when an account needed for posting is not configured.

    The business document is kept; only its journal entry is skipped.
    """

    def __init__(self, setting, message=None):
        self.setting = setting
        super().__init__(message or f"No account configured for '{setting}'")


class AlreadyPostedDifferentPayload(LedgerError):
    """Raised when a source document is re-posted with a different payload."""
    pass
