class BillingError(Exception):
    """Base exception for billing failures."""


class LookupFailure(BillingError):
    """An appointment, patient or lab test reference could not be resolved."""


class ReconciliationError(BillingError):
    """Itemization repair could not be persisted; nothing was written."""

    def __init__(self, message, *, transaction_id=None, cause=None):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.cause = cause


class TransactionStateError(BillingError):
    """The operation is not allowed in the transaction's current status."""


class AppointmentSelectionError(BillingError):
    """None of the selected appointments can be billed."""
