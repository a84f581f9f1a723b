"""
CSV export and import of ledger transactions.

Export writes one row per non-deleted record, oldest first. Import reads
the same columns back and saves every row through the store, so the usual
validation applies. Links are not part of the format: imported records
start unlinked.

Columns:
    ID, Date, Name, Amount, Kind, Payer, Category, Payment Mode,
    Description, Participants, Splits (JSON)

Amounts are integer minor units, signed as stored.
"""

import csv
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import List, Optional, Tuple

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from apps.ledger.models import TransactionKind, SplitMethod, REPAYMENT_KINDS
from apps.spaces.models import Participant, PRIMARY_PARTICIPANT_ID

from .exceptions import LedgerValidationError, CsvImportError
from .splits import split_equally
from .store import load_snapshot, create_transaction


logger = logging.getLogger(__name__)


CSV_HEADERS = [
    'ID',
    'Date',
    'Name',
    'Amount',
    'Kind',
    'Payer',
    'Category',
    'Payment Mode',
    'Description',
    'Participants',
    'Splits (JSON)',
]

PRIMARY_LABEL = 'You (me)'


@dataclass
class CsvImportResult:
    """Records created by an import and the rows that were skipped."""

    created: List = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)


def export_transactions_csv(stream, *, space=None) -> int:
    """
    Write the ledger (or one space of it) to ``stream`` as CSV.

    Returns:
        Number of records written
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADERS)

    count = 0
    for txn in load_snapshot(space=space):
        splits = ''
        if not txn.is_repayment and txn.splits:
            splits = json.dumps(txn.splits, sort_keys=True)

        writer.writerow([
            txn.id,
            txn.timestamp.isoformat(),
            txn.name,
            txn.amount,
            txn.kind,
            txn.payer_id,
            txn.category,
            txn.payment_mode,
            txn.description,
            ', '.join(txn.participants or []),
            splits,
        ])
        count += 1

    logger.info("Exported %s transactions", count)
    return count


def _normalize(value: str) -> str:
    return ' '.join((value or '').split()).lower()


def _payer_lookup():
    lookup = {}
    for participant in Participant.objects.all():
        lookup[_normalize(participant.id)] = participant.id
        lookup.setdefault(_normalize(participant.name), participant.id)
    lookup[_normalize(PRIMARY_LABEL)] = PRIMARY_PARTICIPANT_ID
    return lookup


def _parse_timestamp(value: str) -> Optional[datetime]:
    value = (value or '').strip()
    if not value:
        return None

    try:
        parsed = parse_datetime(value)
        if parsed is None:
            day = parse_date(value)
            if day is None:
                return None
            # Date-only rows land at noon
            parsed = datetime.combine(day, time(12, 0))
    except ValueError:
        return None

    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _parse_splits(value: str, row_number: int):
    try:
        splits = json.loads(value)
    except ValueError:
        raise CsvImportError(row_number, "Splits (JSON) is not valid JSON")

    if not isinstance(splits, dict):
        raise CsvImportError(row_number, "Splits (JSON) must be an object")
    try:
        return {str(uid): int(share) for uid, share in splits.items()}
    except (TypeError, ValueError):
        raise CsvImportError(row_number, "Split shares must be integers")


def _row_fields(row, row_number: int, payers) -> Optional[dict]:
    name = (row.get('Name') or '').strip()
    raw_amount = (row.get('Amount') or '').strip()
    if not name or not raw_amount:
        return None

    try:
        amount = int(raw_amount)
    except ValueError:
        raise CsvImportError(row_number, f"Amount {raw_amount!r} is not an integer")

    kind = (row.get('Kind') or '').strip() or TransactionKind.EXPENSE
    if kind not in TransactionKind.values:
        raise CsvImportError(row_number, f"Unknown kind '{kind}'")

    payer_label = (row.get('Payer') or '').strip()
    payer = payers.get(_normalize(payer_label))
    if payer is None:
        raise CsvImportError(row_number, f"Payer '{payer_label}' not found in participants")

    participants = [uid.strip() for uid in (row.get('Participants') or '').split(',') if uid.strip()]

    fields = {
        'kind': kind,
        'name': name,
        'amount': amount,
        'payer': payer,
        'participants': participants,
        'category': (row.get('Category') or '').strip(),
        'payment_mode': (row.get('Payment Mode') or '').strip(),
        'description': row.get('Description') or '',
    }

    if kind in REPAYMENT_KINDS or kind == TransactionKind.INCOME:
        fields.update(split_method=SplitMethod.NONE, splits={})
    elif (row.get('Splits (JSON)') or '').strip():
        fields.update(split_method=SplitMethod.DYNAMIC, splits=_parse_splits(row['Splits (JSON)'], row_number))
    else:
        shared_by = [PRIMARY_PARTICIPANT_ID] + [uid for uid in participants if uid != PRIMARY_PARTICIPANT_ID]
        fields.update(split_method=SplitMethod.EQUAL, splits=split_equally(amount, shared_by))

    return fields


@transaction.atomic
def import_transactions_csv(stream, *, space) -> CsvImportResult:
    """
    Read transactions from CSV and save them into ``space``.

    Rows without a name or amount are skipped silently, rows with an
    unreadable date are skipped with a warning. Any other bad row aborts
    the import and nothing is saved.

    Raises:
        CsvImportError: Naming the first row that could not be imported
    """
    result = CsvImportResult()
    payers = _payer_lookup()

    # Row 1 is the header
    for row_number, row in enumerate(csv.DictReader(stream), start=2):
        fields = _row_fields(row, row_number, payers)
        if fields is None:
            continue

        timestamp = _parse_timestamp(row.get('Date'))
        if timestamp is None:
            logger.warning("Skipping row %s: invalid date %r", row_number, row.get('Date'))
            result.skipped.append((row_number, f"Invalid date {row.get('Date')!r}"))
            continue
        fields['timestamp'] = timestamp

        try:
            result.created.append(create_transaction(space=space, fields=fields))
        except LedgerValidationError as e:
            raise CsvImportError(row_number, f"{e.field}: {e.message}") from e

    logger.info(
        "Imported %s transactions into space %s (%s skipped)",
        len(result.created), space.id, len(result.skipped),
    )
    return result
