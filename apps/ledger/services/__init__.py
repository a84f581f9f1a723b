"""
Ledger app services layer.

Services contain business logic and orchestrate operations across models.
The resolver, planner and split helpers are pure and work on in-memory
snapshots; the store module is the only one that writes.
"""

from .exceptions import (
    LedgerServiceError,
    LedgerValidationError,
    SplitValidationError,
    AllocationExceededError,
    UnresolvedParentError,
    TransactionNotFoundError,
    ActiveChildrenError,
    CsvImportError,
    ConsistencyWarning,
)

from .splits import (
    split_equally,
    split_by_percentage,
    validate_split_input,
    ensure_split_sum,
)

from .store import (
    get_transaction_by_id,
    list_transactions,
    load_snapshot,
    load_transactions_by_ids,
    query_by_parent,
    compute_net_summary,
    recompute_parent_summary,
    find_summary_drift,
    repair_parent_summaries,
    find_unresolved_parents,
    create_transaction,
    update_transaction,
    delete_transaction,
    restore_transaction,
    move_transaction_to_space,
)

from .resolver import (
    LinkCandidate,
    OWED_TO_ME,
    OWED_BY_ME,
    children_of,
    outstanding,
    settlement_remaining,
    net_debt_with,
    describe_parent,
    eligible_parents,
)

from .csv_io import (
    CSV_HEADERS,
    CsvImportResult,
    export_transactions_csv,
    import_transactions_csv,
)

from .planner import (
    DraftLink,
    DraftPatch,
    TransactionDraft,
    attach_link,
    reallocate,
    update_allocation,
    remove_link,
    swap_direction,
    cap_refund_links,
    validate_draft,
    finalize_draft,
)


__all__ = [
    # Exceptions
    'LedgerServiceError',
    'LedgerValidationError',
    'SplitValidationError',
    'AllocationExceededError',
    'UnresolvedParentError',
    'TransactionNotFoundError',
    'ActiveChildrenError',
    'CsvImportError',
    'ConsistencyWarning',

    # Splits
    'split_equally',
    'split_by_percentage',
    'validate_split_input',
    'ensure_split_sum',

    # Store
    'get_transaction_by_id',
    'list_transactions',
    'load_snapshot',
    'load_transactions_by_ids',
    'query_by_parent',
    'compute_net_summary',
    'recompute_parent_summary',
    'find_summary_drift',
    'repair_parent_summaries',
    'find_unresolved_parents',
    'create_transaction',
    'update_transaction',
    'delete_transaction',
    'restore_transaction',
    'move_transaction_to_space',

    # Resolver
    'LinkCandidate',
    'OWED_TO_ME',
    'OWED_BY_ME',
    'children_of',
    'outstanding',
    'settlement_remaining',
    'net_debt_with',
    'describe_parent',
    'eligible_parents',

    # Planner
    'DraftLink',
    'DraftPatch',
    'TransactionDraft',
    'attach_link',
    'reallocate',
    'update_allocation',
    'remove_link',
    'swap_direction',
    'cap_refund_links',
    'validate_draft',
    'finalize_draft',

    # CSV
    'CSV_HEADERS',
    'CsvImportResult',
    'export_transactions_csv',
    'import_transactions_csv',
]
