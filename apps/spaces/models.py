# ==========================================
# apps/spaces/models.py
# ==========================================

from django.db import models


PRIMARY_PARTICIPANT_ID = 'me'
DEFAULT_SPACE_ID = 'personal'


class Space(models.Model):
    """Partition of the ledger that balances are computed within."""

    id = models.SlugField(primary_key=True, max_length=64)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'spaces'
        ordering = ['name']

    def __str__(self):
        return self.name


class Participant(models.Model):
    """
    Someone the primary user shares expenses with.

    Participants are archived, never deleted: historical transactions keep
    referencing their id.
    """

    id = models.SlugField(primary_key=True, max_length=64)
    name = models.CharField(max_length=100)
    is_archived = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'participants'
        indexes = [
            models.Index(fields=['is_archived', 'name'], name='participants_archived_idx'),
        ]
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_primary(self):
        return self.id == PRIMARY_PARTICIPANT_ID

    def archive(self):
        self.is_archived = True
        self.save(update_fields=['is_archived', 'updated_at'])

    def restore(self):
        self.is_archived = False
        self.save(update_fields=['is_archived', 'updated_at'])
