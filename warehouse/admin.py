from django.contrib import admin

from .models import PackingProgress, PickingSession, PickingSessionItem, PickingSessionOrder


class PickingSessionOrderInline(admin.TabularInline):
    model = PickingSessionOrder
    extra = 0
    can_delete = False
    readonly_fields = ("order", "added_at", "released_at")


class PickingSessionItemInline(admin.TabularInline):
    model = PickingSessionItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "total_quantity_needed", "quantity_picked", "sealed_at")


@admin.register(PickingSession)
class PickingSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "code", "store", "status", "last_activity_at", "stale_flagged_at", "created_at")
    list_filter = ("status", "store")
    search_fields = ("code",)
    date_hierarchy = "created_at"
    readonly_fields = ("status", "last_activity_at", "completed_at", "abandoned_at")
    inlines = [PickingSessionOrderInline, PickingSessionItemInline]


@admin.register(PackingProgress)
class PackingProgressAdmin(admin.ModelAdmin):
    list_display = ("id", "session", "order", "product", "quantity_needed", "quantity_packed", "sealed_at")
    list_filter = ("session__status",)
    search_fields = ("session__code", "order__number")
    readonly_fields = ("quantity_needed", "quantity_packed", "version", "sealed_at")
