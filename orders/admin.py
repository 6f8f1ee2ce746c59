from django.contrib import admin

from .models import Order, OrderLineItem, OrderStatusChange


class OrderLineItemInline(admin.TabularInline):
    model = OrderLineItem
    extra = 0
    readonly_fields = ("stock_deducted", "stock_deducted_at", "stock_restored", "stock_restored_at")


class OrderStatusChangeInline(admin.TabularInline):
    model = OrderStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ("from_status", "to_status", "version", "actor", "note", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "store", "status", "version", "customer_name", "created_at")
    list_filter = ("status", "store", "created_at")
    search_fields = ("number", "external_id", "customer_name", "customer_phone")
    date_hierarchy = "created_at"
    # Status moves only through the state machine.
    readonly_fields = ("status", "version", "status_changed_at")
    inlines = [OrderLineItemInline, OrderStatusChangeInline]
