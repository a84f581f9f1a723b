"""
Analytics Module
=================

Read-only queries that load a space's transactions from the database and
run the pure ledger computations over them.

Classes:
    LedgerAnalytics: Static methods for balances, settlement suggestions,
        data health and the dashboard.

Example:
    Getting balances for a space::

        from apps.analytics.analytics import LedgerAnalytics

        data = LedgerAnalytics.space_balances(space_id='personal')
        for participant_id, balance in data['net_balance'].items():
            print(participant_id, balance)

Note:
    This module is read-only and doesn't modify any data. All methods
    return plain dictionaries suitable for JSON responses.
"""

from django.conf import settings

from apps.ledger.models import Transaction
from apps.ledger.services.store import load_snapshot
from apps.spaces.models import Space, Participant

from .balances import compute_balances, participant_positions, positions_from_balances
from .exceptions import SpaceNotFoundError, InvalidScopeError
from .health import scan_data_health
from .netting import suggest_settlements, unmatched_positions


SCOPE_ME = 'me'
SCOPE_EVERYONE = 'everyone'
VALID_SCOPES = (SCOPE_ME, SCOPE_EVERYONE)


class LedgerAnalytics:
    """
    Query methods for the analytics endpoints.

    Every method accepts an optional ``space_id``; without it the whole
    ledger (all spaces) is used.
    """

    @staticmethod
    def _get_space(space_id):
        if not space_id:
            return None
        try:
            return Space.objects.get(id=space_id)
        except Space.DoesNotExist:
            raise SpaceNotFoundError(f"Space '{space_id}' not found")

    @staticmethod
    def space_balances(space_id=None, now=None):
        """
        Net balances of the primary user against every participant.

        Returns:
            dict: ``compute_balances`` output plus ``space`` and ``currency``.
        """
        space = LedgerAnalytics._get_space(space_id)
        transactions = load_snapshot(space=space)
        participants = Participant.objects.all()

        data = compute_balances(transactions, participants, now=now)
        data['space'] = space.id if space else None
        data['currency'] = settings.LEDGER_CURRENCY
        return data

    @staticmethod
    def settlement_suggestions(space_id=None, scope=SCOPE_ME, threshold=None):
        """
        Suggest payments that net out outstanding debts.

        Args:
            space_id: Space to compute within
            scope: 'me' nets the primary user's balances, 'everyone' nets
                every participant's position (debts between others too)
            threshold: Materiality threshold in minor units

        Returns:
            dict: suggestions, positions and what is left unmatched.

        Raises:
            SpaceNotFoundError: If the space doesn't exist
            InvalidScopeError: If the scope is unknown
        """
        if scope not in VALID_SCOPES:
            raise InvalidScopeError(
                f"Invalid scope: '{scope}'. Valid options: {', '.join(VALID_SCOPES)}"
            )

        space = LedgerAnalytics._get_space(space_id)
        transactions = load_snapshot(space=space)

        if scope == SCOPE_EVERYONE:
            positions = participant_positions(transactions)
        else:
            balances = compute_balances(transactions, Participant.objects.all())
            positions = positions_from_balances(balances['net_balance'])

        transfers = suggest_settlements(positions, threshold=threshold)
        names = dict(Participant.objects.values_list('id', 'name'))

        return {
            'space': space.id if space else None,
            'scope': scope,
            'positions': positions,
            'suggestions': [
                {
                    **transfer.as_dict(),
                    'from_name': names.get(transfer.from_id, transfer.from_id),
                    'to_name': names.get(transfer.to_id, transfer.to_id),
                }
                for transfer in transfers
            ],
            'unmatched': unmatched_positions(positions, transfers),
        }

    @staticmethod
    def data_health(space_id=None):
        """Run the data-health scan over a space (deleted records included)."""
        space = LedgerAnalytics._get_space(space_id)

        transactions = Transaction.objects.all()
        if space is not None:
            transactions = transactions.filter(space=space)

        report = scan_data_health(list(transactions), Participant.objects.all())
        report['space'] = space.id if space else None
        return report

    @staticmethod
    def dashboard(space_id=None):
        """
        Everything the home screen needs in one call.

        Returns:
            dict: balances, top suggestions, health issue count and record
            counts for the space.
        """
        balances = LedgerAnalytics.space_balances(space_id=space_id)
        suggestions = LedgerAnalytics.settlement_suggestions(space_id=space_id)
        health = LedgerAnalytics.data_health(space_id=space_id)

        owed_to_me = sum(v for v in balances['net_balance'].values() if v > 0)
        i_owe = -sum(v for v in balances['net_balance'].values() if v < 0)

        active = Transaction.objects.filter(is_deleted=False)
        if space_id:
            active = active.filter(space_id=space_id)

        return {
            'space': balances['space'],
            'currency': balances['currency'],
            'balances': balances,
            'owed_to_me': owed_to_me,
            'i_owe': i_owe,
            'suggestions': suggestions['suggestions'],
            'health_issues': health['total'],
            'transaction_count': active.count(),
        }
