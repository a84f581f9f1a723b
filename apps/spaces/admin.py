# ==========================================
# apps/spaces/admin.py
# ==========================================

from django.contrib import admin
from apps.spaces.models import Space, Participant


@admin.register(Space)
class SpaceAdmin(admin.ModelAdmin):
    """Admin interface for Spaces."""

    list_display = ['id', 'name', 'transaction_count', 'created_at']
    search_fields = ['id', 'name', 'description']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['name']

    def transaction_count(self, obj):
        """Show number of active transactions."""
        return obj.transactions.filter(is_deleted=False).count()
    transaction_count.short_description = 'Transactions'


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    """Admin interface for Participants."""

    list_display = ['id', 'name', 'is_archived', 'created_at']
    list_filter = ['is_archived']
    search_fields = ['id', 'name']
    readonly_fields = ['created_at', 'updated_at']

    actions = ['archive_participants']

    def archive_participants(self, request, queryset):
        """Archive selected participants (the primary user is skipped)."""
        updated = queryset.exclude(id='me').update(is_archived=True)
        self.message_user(request, f"Archived {updated} participants")

    def has_delete_permission(self, request, obj=None):
        """Participants are archived, never deleted."""
        return False
