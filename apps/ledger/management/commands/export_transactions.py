"""
Management command to export the ledger as CSV.

Usage:
    python manage.py export_transactions [--space personal] [--output ledger.csv]
"""

from django.core.management.base import BaseCommand, CommandError

from apps.ledger.services import export_transactions_csv
from apps.spaces.services import get_space_by_id, SpaceNotFoundError


class Command(BaseCommand):
    help = 'Export non-deleted transactions as CSV'

    def add_arguments(self, parser):
        parser.add_argument(
            '--space',
            help='Only export this space',
        )
        parser.add_argument(
            '--output',
            help='File to write (defaults to stdout)',
        )

    def handle(self, *args, **options):
        space = None
        if options.get('space'):
            try:
                space = get_space_by_id(space_id=options['space'])
            except SpaceNotFoundError as e:
                raise CommandError(str(e))

        if not options.get('output'):
            export_transactions_csv(self.stdout, space=space)
            return

        with open(options['output'], 'w', newline='', encoding='utf-8') as handle:
            count = export_transactions_csv(handle, space=space)

        self.stdout.write(
            self.style.SUCCESS(f"Exported {count} transaction(s) to {options['output']}")
        )
