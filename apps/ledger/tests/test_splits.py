"""
Unit tests for split calculation.

Tests cover:
- Equal splits hand out the remainder one unit at a time
- Percentage splits always sum to the amount
- Raw split input validation messages
"""

import pytest
from decimal import Decimal

from apps.ledger.models import TransactionKind, SplitMethod
from apps.ledger.services import (
    split_equally,
    split_by_percentage,
    validate_split_input,
    ensure_split_sum,
    SplitValidationError,
)


class TestSplitEqually:
    """Tests for split_equally()."""

    def test_even_amount(self):
        assert split_equally(10000, ['me', 'alice']) == {'me': 5000, 'alice': 5000}

    def test_remainder_goes_to_first_participants(self):
        """10000 / 3 = 3333 r1, the first participant gets the extra unit."""
        shares = split_equally(10000, ['me', 'alice', 'bob'])

        assert shares == {'me': 3334, 'alice': 3333, 'bob': 3333}
        assert sum(shares.values()) == 10000

    def test_negative_amount_keeps_sign(self):
        shares = split_equally(-3000, ['me', 'alice'])

        assert shares == {'me': -1500, 'alice': -1500}

    def test_negative_remainder(self):
        shares = split_equally(-1001, ['me', 'alice'])

        assert shares == {'me': -501, 'alice': -500}
        assert sum(shares.values()) == -1001

    def test_no_participants_rejected(self):
        with pytest.raises(SplitValidationError):
            split_equally(100, [])


class TestSplitByPercentage:
    """Tests for split_by_percentage()."""

    def test_thirds_sum_exactly(self):
        shares = split_by_percentage(1000, {'me': '33.333', 'alice': '33.333', 'bob': '33.334'})

        assert sum(shares.values()) == 1000

    def test_first_key_absorbs_rounding(self):
        shares = split_by_percentage(100, {
            'me': Decimal('33.3333'),
            'alice': Decimal('33.3333'),
            'bob': Decimal('33.3334'),
        })

        assert shares == {'me': 34, 'alice': 33, 'bob': 33}

    def test_refund_shares_are_negative(self):
        shares = split_by_percentage(-3000, {'me': 50, 'alice': 50})

        assert shares == {'me': -1500, 'alice': -1500}


class TestValidateSplitInput:
    """Tests for validate_split_input()."""

    def test_equal_is_always_valid(self):
        validate_split_input(100, {}, SplitMethod.EQUAL)

    def test_percentage_must_total_100(self):
        with pytest.raises(SplitValidationError) as exc_info:
            validate_split_input(100, {'me': 50, 'alice': 40}, SplitMethod.PERCENTAGE)

        assert 'Must be 100%' in exc_info.value.message
        assert exc_info.value.field == 'splits'

    def test_percentage_within_tolerance(self):
        validate_split_input(100, {'me': '33.333', 'alice': '33.333', 'bob': '33.333'}, SplitMethod.PERCENTAGE)

    def test_dynamic_remaining(self):
        with pytest.raises(SplitValidationError) as exc_info:
            validate_split_input(1000, {'me': 400, 'alice': 500}, SplitMethod.DYNAMIC)

        assert exc_info.value.message == '100 remaining.'

    def test_dynamic_over(self):
        with pytest.raises(SplitValidationError) as exc_info:
            validate_split_input(1000, {'me': 600, 'alice': 500}, SplitMethod.DYNAMIC)

        assert exc_info.value.message == '100 over.'

    def test_dynamic_needs_amount(self):
        with pytest.raises(SplitValidationError) as exc_info:
            validate_split_input(0, {'me': 600}, SplitMethod.DYNAMIC)

        assert exc_info.value.field == 'amount'


class TestEnsureSplitSum:
    """Tests for the store-side split sum check."""

    def test_matching_splits_pass(self):
        ensure_split_sum(TransactionKind.EXPENSE, 10000, {'me': 5000, 'alice': 5000}, SplitMethod.EQUAL)

    def test_mismatch_rejected(self):
        with pytest.raises(SplitValidationError):
            ensure_split_sum(TransactionKind.EXPENSE, 10000, {'me': 5000, 'alice': 4000}, SplitMethod.EQUAL)

    def test_fractional_share_rejected(self):
        with pytest.raises(SplitValidationError):
            ensure_split_sum(TransactionKind.EXPENSE, 100, {'me': 50.5, 'alice': 49.5}, SplitMethod.PERCENTAGE)

    def test_empty_splits_rejected(self):
        with pytest.raises(SplitValidationError):
            ensure_split_sum(TransactionKind.EXPENSE, 10000, {}, SplitMethod.EQUAL)

    def test_empty_splits_on_zero_amount_pass(self):
        ensure_split_sum(TransactionKind.EXPENSE, 0, {}, SplitMethod.EQUAL)

    def test_dynamic_not_enforced(self):
        ensure_split_sum(TransactionKind.EXPENSE, 10000, {'me': 1}, SplitMethod.DYNAMIC)

    def test_settlements_not_enforced(self):
        ensure_split_sum(TransactionKind.SETTLEMENT, 10000, {}, SplitMethod.NONE)
