"""
Domain exceptions for ledger app.

This module defines the exception hierarchy for ledger errors. Validation
errors carry a ``field`` and a ``message`` so callers can surface them as
structured values instead of free text.

Exception Hierarchy:
    LedgerServiceError (base)
    ├── LedgerValidationError
    │   ├── SplitValidationError
    │   └── AllocationExceededError
    ├── UnresolvedParentError
    ├── TransactionNotFoundError
    ├── ActiveChildrenError
    └── CsvImportError

    ConsistencyWarning (UserWarning, never raised to callers)
"""
from rest_framework.exceptions import APIException


class LedgerServiceError(Exception):
    """Base exception for ledger service errors."""
    pass


class LedgerValidationError(LedgerServiceError):
    """
    Raised before any write when a record or draft is invalid.

    Nothing is persisted when this is raised.
    """

    def __init__(self, field, message):
        super().__init__(message)
        self.field = field
        self.message = message

    def as_dict(self):
        return {'field': self.field, 'message': self.message}


class SplitValidationError(LedgerValidationError):
    """Raised when splits don't add up to the amount or to 100%."""

    def __init__(self, message, field='splits'):
        super().__init__(field, message)


class AllocationExceededError(LedgerValidationError):
    """Raised when a refund link allocates more than its parent allows."""

    def __init__(self, parent_id, allocated, maximum):
        super().__init__(
            'links',
            f"Allocation {allocated} for parent {parent_id} exceeds "
            f"the refundable amount {maximum}."
        )
        self.parent_id = str(parent_id)
        self.allocated = allocated
        self.maximum = maximum

    def as_dict(self):
        data = super().as_dict()
        data['parent_id'] = self.parent_id
        return data


class UnresolvedParentError(LedgerServiceError):
    """
    A link points at a parent id the store cannot resolve.

    Recoverable: the record is still saved and the resolver treats the link
    as contributing zero.
    """

    def __init__(self, transaction_id, parent_id):
        super().__init__(
            f"Transaction {transaction_id} links to missing parent {parent_id}"
        )
        self.transaction_id = str(transaction_id)
        self.parent_id = str(parent_id)


class TransactionNotFoundError(LedgerServiceError):
    """Raised when a transaction does not exist."""
    pass


class ActiveChildrenError(LedgerServiceError):
    """Raised when deleting a record that active children still link to."""
    pass


class CsvImportError(LedgerServiceError):
    """A CSV row could not be imported. Nothing from the file is saved."""

    def __init__(self, row, message):
        super().__init__(f"Row {row}: {message}")
        self.row = row
        self.message = message


class ConsistencyWarning(UserWarning):
    """Cached net amount on a parent diverged from a fresh recompute."""

    def __init__(self, transaction_id, stored, expected):
        super().__init__(
            f"Cached net amount for {transaction_id} is {stored}, expected {expected}"
        )
        self.transaction_id = str(transaction_id)
        self.stored = stored
        self.expected = expected


class TransactionNotFoundAPIError(APIException):
    """Transaction not found."""
    status_code = 404
    default_detail = 'Transaction not found.'
    default_code = 'transaction_not_found'


class ActiveChildrenAPIError(APIException):
    """Transaction still has active linked records."""
    status_code = 409
    default_detail = 'Cannot delete: active linked refunds or repayments exist.'
    default_code = 'active_children'
