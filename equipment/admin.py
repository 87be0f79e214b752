from django.contrib import admin

from .models import Equipment, EventEquipment


@admin.register(Equipment)
class EquipmentAdmin(admin.ModelAdmin):
    list_display = ("name", "organizer", "category", "unit", "price", "quantity", "is_available")
    list_filter = ("is_available", "category")
    search_fields = ("name", "organizer__organization_name")


@admin.register(EventEquipment)
class EventEquipmentAdmin(admin.ModelAdmin):
    list_display = ("equipment", "event", "special_price", "available_quantity")
    list_filter = ("event",)
    search_fields = ("equipment__name", "event__name")
