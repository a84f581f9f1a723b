"""
Management command to import transactions from CSV.

The file uses the columns written by ``export_transactions``. Either every
row is saved or none is.

Usage:
    python manage.py import_transactions ledger.csv [--space personal]
"""

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.ledger.services import import_transactions_csv, CsvImportError
from apps.spaces.services import get_space_by_id, SpaceNotFoundError


class Command(BaseCommand):
    help = 'Import transactions from a CSV file'

    def add_arguments(self, parser):
        parser.add_argument('path', help='CSV file to read')
        parser.add_argument(
            '--space',
            default=None,
            help='Space to import into (defaults to the default space)',
        )

    def handle(self, *args, **options):
        try:
            space = get_space_by_id(space_id=options['space'] or settings.LEDGER_DEFAULT_SPACE)
        except SpaceNotFoundError as e:
            raise CommandError(str(e))

        try:
            with open(options['path'], newline='', encoding='utf-8') as handle:
                result = import_transactions_csv(handle, space=space)
        except OSError as e:
            raise CommandError(f"Cannot read {options['path']}: {e}")
        except CsvImportError as e:
            raise CommandError(f"{e}. Nothing was imported.")

        for row_number, reason in result.skipped:
            self.stdout.write(self.style.WARNING(f'  - skipped row {row_number}: {reason}'))

        self.stdout.write(
            self.style.SUCCESS(f'Successfully imported {len(result.created)} transaction(s)!')
        )
