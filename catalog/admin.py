"""Admin registration for catalog models."""

from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "sku", "name", "store", "stock", "is_active", "updated_at")
    search_fields = ("sku", "name")
    list_filter = ("store", "is_active")
    # Stock is a ledger projection; it is never edited by hand.
    readonly_fields = ("stock",)
