# Generated manually to seed the primary user and the personal space
from django.db import migrations


def seed_defaults(apps, schema_editor):
    """Create the 'me' participant and the 'personal' space."""
    Participant = apps.get_model('spaces', 'Participant')
    Space = apps.get_model('spaces', 'Space')

    Participant.objects.get_or_create(id='me', defaults={'name': 'You'})
    Space.objects.get_or_create(id='personal', defaults={'name': 'Personal'})


def reverse_seed(apps, schema_editor):
    """Seed rows are referenced by transactions, leave them in place."""
    pass


class Migration(migrations.Migration):

    dependencies = [
        ('spaces', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_defaults, reverse_seed),
    ]
