"""
Returns Module - Django Admin Configuration

Internal admin panel used by the operations team to:
- View and search returns with their items and status timeline
- Cancel returns in bulk (through ReturnService, so the same rules apply)
- Maintain return reasons and return shipping options

Access at: http://127.0.0.1:8000/admin/
"""

from django.contrib import admin, messages

from .exceptions import NotAllowedError
from .models import (
    LineItem, Order, Return, ReturnItem, ReturnReason,
    ReturnStatusHistory, ShippingOption,
)
from .services import ReturnService


# ============================================================
# INLINE MODELS (shown inside parent model's page)
# ============================================================

class ReturnItemInline(admin.TabularInline):
    """Show return lines inside the Return detail page."""
    model = ReturnItem
    extra = 0
    readonly_fields = [
        'item', 'quantity', 'requested_quantity', 'received_quantity',
        'is_requested', 'reason', 'note',
    ]
    can_delete = False


class ReturnStatusHistoryInline(admin.TabularInline):
    """Show status timeline inside the Return detail page."""
    model = ReturnStatusHistory
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'changed_by', 'comment', 'created_at']
    ordering = ['-created_at']
    can_delete = False


class LineItemInline(admin.TabularInline):
    model = LineItem
    fk_name = 'order'
    extra = 0
    fields = ['title', 'variant', 'unit_price', 'quantity', 'returned_quantity']


# ============================================================
# ORDER ADMIN
# ============================================================

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'email', 'fulfillment_status', 'payment_status',
        'total', 'paid_total', 'refunded_total', 'created_at',
    ]
    list_filter = ['fulfillment_status', 'payment_status']
    search_fields = ['order_number', 'email']
    readonly_fields = ['created_at', 'updated_at']
    list_per_page = 25
    inlines = [LineItemInline]


# ============================================================
# RETURN ADMIN
# ============================================================

@admin.register(Return)
class ReturnAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'order', 'swap', 'status', 'refund_amount',
        'received_at', 'created_at',
    ]
    list_filter = ['status']
    search_fields = ['id', 'order__order_number', 'idempotency_key']
    readonly_fields = ['shipping_data', 'received_at', 'created_at', 'updated_at']
    list_per_page = 25

    inlines = [ReturnItemInline, ReturnStatusHistoryInline]

    fieldsets = (
        ('Return Info', {
            'fields': ('order', 'swap', 'claim_order', 'status', 'refund_amount')
        }),
        ('Shipping', {
            'fields': ('shipping_data', 'received_at')
        }),
        ('Extra', {
            'fields': ('metadata', 'no_notification', 'idempotency_key')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['cancel_returns']

    @admin.action(description='Cancel selected returns')
    def cancel_returns(self, request, queryset):
        service = ReturnService()
        canceled = 0
        for ret in queryset:
            try:
                service.cancel(ret.pk)
            except NotAllowedError as err:
                self.message_user(request, f'Return {ret.pk}: {err.message}', level=messages.WARNING)
            else:
                canceled += 1
        self.message_user(request, f'{canceled} return(s) canceled.')


@admin.register(LineItem)
class LineItemAdmin(admin.ModelAdmin):
    list_display = ['title', 'order', 'swap', 'unit_price', 'quantity', 'returned_quantity']
    search_fields = ['title', 'order__order_number']
    raw_id_fields = ['order', 'swap', 'claim_order', 'variant']


@admin.register(ReturnReason)
class ReturnReasonAdmin(admin.ModelAdmin):
    list_display = ['value', 'label']
    search_fields = ['value', 'label']


@admin.register(ShippingOption)
class ShippingOptionAdmin(admin.ModelAdmin):
    list_display = ['name', 'provider_id', 'amount', 'is_return']
    list_filter = ['provider_id', 'is_return']


@admin.register(ReturnStatusHistory)
class ReturnStatusHistoryAdmin(admin.ModelAdmin):
    list_display = [
        'return_order', 'from_status', 'to_status',
        'changed_by', 'created_at',
    ]
    list_filter = ['to_status', 'changed_by']
    readonly_fields = ['return_order', 'from_status', 'to_status', 'changed_by', 'comment', 'created_at']
    list_per_page = 50
