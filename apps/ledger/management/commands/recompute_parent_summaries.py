"""
Management command to repair cached parent summaries.

Recomputes the cached net amount of every expense and product refund whose
stored value no longer matches its linked refunds.

Usage:
    python manage.py recompute_parent_summaries [--dry-run] [--space personal]
"""

from django.core.management.base import BaseCommand, CommandError

from apps.ledger.services import repair_parent_summaries
from apps.spaces.services import get_space_by_id, SpaceNotFoundError


class Command(BaseCommand):
    help = 'Recompute cached net amounts that drifted from their children'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be updated without making changes',
        )
        parser.add_argument(
            '--space',
            help='Only scan this space',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        space = None
        if options.get('space'):
            try:
                space = get_space_by_id(space_id=options['space'])
            except SpaceNotFoundError as e:
                raise CommandError(str(e))

        drifts = repair_parent_summaries(space=space, dry_run=dry_run)

        if not drifts:
            self.stdout.write(
                self.style.SUCCESS('No cached summaries need fixing. All good!')
            )
            return

        self.stdout.write(f'\nFound {len(drifts)} drifted summary(ies):\n')
        for drift in drifts:
            self.stdout.write(
                f'  - {drift.transaction_id} | stored: {drift.stored} | expected: {drift.expected}'
            )

        if dry_run:
            self.stdout.write(
                self.style.WARNING('\n--dry-run mode: No changes made.')
            )
            return

        self.stdout.write(
            self.style.SUCCESS(f'\nSuccessfully fixed {len(drifts)} summary(ies)!')
        )
