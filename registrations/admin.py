from django.contrib import admin

from .models import EquipmentAllocation, Registration


class EquipmentAllocationInline(admin.TabularInline):
    model = EquipmentAllocation
    extra = 0


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = (
        "exhibitor",
        "event",
        "status",
        "stand_selection_completed",
        "equipment_selection_completed",
        "approval_date",
        "cancelled_at",
    )
    list_filter = ("status", "event")
    search_fields = ("exhibitor__company_name", "event__name")
    readonly_fields = ("created_at", "updated_at")
    filter_horizontal = ("stands",)
    inlines = [EquipmentAllocationInline]
