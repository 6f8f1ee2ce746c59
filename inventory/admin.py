"""Admin registrations for inventory app."""

from django.contrib import admin

from .models import InventoryMovement


@admin.register(InventoryMovement)
class InventoryMovementAdmin(admin.ModelAdmin):
    list_display = ("id", "product", "kind", "quantity", "stock_after", "order", "reference", "created_at")
    list_filter = ("kind", "store")
    search_fields = ("product__sku", "reference")
    date_hierarchy = "created_at"

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
