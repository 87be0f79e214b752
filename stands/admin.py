from django.contrib import admin

from .models import Plan, Stand


class StandInline(admin.TabularInline):
    model = Stand
    extra = 0
    fields = ("number", "stand_type", "area", "base_price", "status", "reservation")
    readonly_fields = ("reservation",)


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ("name", "organizer", "created_at")
    search_fields = ("name", "organizer__organization_name")
    inlines = [StandInline]


@admin.register(Stand)
class StandAdmin(admin.ModelAdmin):
    list_display = ("number", "plan", "stand_type", "base_price", "status", "reservation")
    list_filter = ("status", "stand_type", "plan")
    search_fields = ("number", "plan__name")
    ordering = ("plan", "number")
