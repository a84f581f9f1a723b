"""
Split calculation service.

All shares are integer minor units. Splitting never loses or invents a
single unit: equal splits hand the remainder out one unit at a time to the
first participants, percentage splits give it to the first key.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

from apps.ledger.models import TransactionKind, SplitMethod

from .exceptions import SplitValidationError


PERCENT_TOLERANCE = Decimal('0.01')

# Kinds whose splits must add up to the amount
SPLIT_KINDS = (TransactionKind.EXPENSE, TransactionKind.PRODUCT_REFUND)
STRICT_METHODS = (SplitMethod.EQUAL, SplitMethod.PERCENTAGE)


def split_equally(amount: int, participant_ids: List[str]) -> Dict[str, int]:
    """
    Split ``amount`` equally among participants.

    Algorithm:
        1. Base share: ``base = |amount| // N``
        2. Remainder: ``remainder = |amount| % N``
        3. First 'remainder' participants get ``base + 1``
        4. Every share carries the sign of ``amount``

    Example:
        >>> split_equally(10000, ['me', 'alice', 'bob'])
        {'me': 3334, 'alice': 3333, 'bob': 3333}

    Raises:
        SplitValidationError: If no participants are given
    """
    if not participant_ids:
        raise SplitValidationError("At least one participant required")

    sign = -1 if amount < 0 else 1
    total = abs(amount)
    count = len(participant_ids)

    base = total // count
    remainder = total % count

    shares = {}
    for i, participant_id in enumerate(participant_ids):
        share = base + 1 if i < remainder else base
        shares[participant_id] = share * sign

    return shares


def split_by_percentage(amount: int, percentages: Dict[str, object]) -> Dict[str, int]:
    """
    Convert percentage shares to integer shares of ``amount``.

    Each share is ``round(percent / 100 * |amount|)`` (half up). The first
    key absorbs whatever rounding leaves over so the shares sum exactly to
    ``amount``.

    Example:
        >>> split_by_percentage(1000, {'me': '33.333', 'alice': '33.333', 'bob': '33.334'})
        {'me': 333, 'alice': 333, 'bob': 334}
    """
    if not percentages:
        raise SplitValidationError("At least one participant required")

    sign = -1 if amount < 0 else 1
    total = abs(amount)

    shares = {}
    for participant_id, percent in percentages.items():
        value = Decimal(str(percent)) / Decimal(100) * Decimal(total)
        shares[participant_id] = int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    first_key = next(iter(shares))
    shares[first_key] += total - sum(shares.values())

    return {key: value * sign for key, value in shares.items()}


def validate_split_input(amount: int, shares: Dict[str, object], method: str) -> None:
    """
    Validate raw split input as entered by the user.

    - equal: always valid
    - percentage: shares must total 100 (within 0.01)
    - dynamic: shares must sum exactly to ``amount``

    Raises:
        SplitValidationError: With a message describing the mismatch
    """
    if method in (SplitMethod.EQUAL, SplitMethod.NONE):
        return

    if method == SplitMethod.PERCENTAGE:
        total_percent = sum((Decimal(str(value or 0)) for value in shares.values()), Decimal(0))
        if abs(total_percent - 100) >= PERCENT_TOLERANCE:
            raise SplitValidationError(f"Total is {total_percent}%. Must be 100%.")
        return

    if method == SplitMethod.DYNAMIC:
        if amount == 0:
            raise SplitValidationError("Enter total amount first.", field='amount')

        split_sum = sum(int(value or 0) for value in shares.values())
        diff = amount - split_sum
        if diff > 0:
            raise SplitValidationError(f"{diff} remaining.")
        if diff < 0:
            raise SplitValidationError(f"{abs(diff)} over.")
        return

    raise SplitValidationError(f"Unknown split method '{method}'", field='split_method')


def ensure_split_sum(kind: str, amount: int, splits: Dict[str, int], method: str) -> None:
    """
    Reject records whose splits no longer add up to their amount.

    Applies to expenses and product refunds split equally or by percentage.
    Checked by the store before every write.
    """
    if kind not in SPLIT_KINDS or method not in STRICT_METHODS:
        return

    if not splits:
        if amount != 0:
            raise SplitValidationError(f"Splits are empty but amount is {amount}")
        return

    for participant_id, share in splits.items():
        if not isinstance(share, int) or isinstance(share, bool):
            raise SplitValidationError(
                f"Share for '{participant_id}' must be an integer amount"
            )

    total = sum(splits.values())
    if total != amount:
        raise SplitValidationError(
            f"Splits sum to {total} but amount is {amount}"
        )
