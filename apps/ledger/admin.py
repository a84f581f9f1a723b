# ==========================================
# apps/ledger/admin.py
# ==========================================

from django.contrib import admin
from django.utils.html import format_html

from .models import Transaction, TransactionLink, TransactionKind
from .services import recompute_parent_summary


class TransactionLinkInline(admin.TabularInline):
    """Read-only view of the link index rows of a transaction."""
    model = TransactionLink
    extra = 0
    fields = ['position', 'parent_id', 'allocated_amount']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        """Link rows are rewritten by the store on every save."""
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin interface for ledger transactions.

    Records are edited through the API so summaries and link rows stay in
    step; the admin is for browsing and repairs.
    """

    list_display = [
        'name',
        'kind_badge',
        'amount',
        'payer',
        'space',
        'cached_net_amount',
        'is_deleted',
        'timestamp',
    ]

    list_filter = [
        'kind',
        'space',
        'is_deleted',
        'timestamp',
    ]

    search_fields = [
        'name',
        'category',
        'description',
        'payer__name',
    ]

    readonly_fields = [
        'id',
        'links',
        'legacy_parent_id',
        'cached_net_amount',
        'cached_has_refunds',
        'last_refund_at',
        'deleted_at',
        'created_at',
        'updated_at',
    ]

    inlines = [TransactionLinkInline]
    date_hierarchy = 'timestamp'
    ordering = ['-timestamp', '-created_at']

    fieldsets = (
        ('Record', {
            'fields': (
                'id',
                'space',
                'kind',
                'name',
            )
        }),
        ('Financial Details', {
            'fields': (
                'amount',
                'payer',
                'split_method',
                'splits',
                'participants',
            )
        }),
        ('Links', {
            'fields': (
                'links',
                'legacy_parent_id',
                'cached_net_amount',
                'cached_has_refunds',
                'last_refund_at',
            )
        }),
        ('Details', {
            'fields': ('category', 'payment_mode', 'description', 'timestamp'),
            'classes': ('collapse',),
        }),
        ('Metadata', {
            'fields': ('is_deleted', 'deleted_at', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def kind_badge(self, obj):
        """Display kind as colored badge."""
        colors = {
            TransactionKind.EXPENSE: ('#E5C49A', '#2C1810'),
            TransactionKind.INCOME: ('#6B8E5E', 'white'),
            TransactionKind.SETTLEMENT: ('#5E7A8E', 'white'),
            TransactionKind.FORGIVENESS: ('#8E5E86', 'white'),
            TransactionKind.PRODUCT_REFUND: ('#B85C5C', 'white'),
        }
        bg, fg = colors.get(obj.kind, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_kind_display()
        )
    kind_badge.short_description = 'Kind'
    kind_badge.admin_order_field = 'kind'

    actions = ['recompute_summaries']

    @admin.action(description='Recompute cached net amount')
    def recompute_summaries(self, request, queryset):
        """Recompute the cached summary of the selected parents."""
        for txn in queryset:
            recompute_parent_summary(txn.id)
        self.message_user(request, f'Recomputed {queryset.count()} summary(ies).')

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('payer', 'space')
