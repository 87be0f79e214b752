from django.contrib import admin

from .models import Event, Exhibitor, Organizer


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("name", "organizer", "status", "start_date", "registration_deadline")
    list_filter = ("status", "organizer")
    search_fields = ("name", "organizer__organization_name")
    ordering = ("-start_date",)


@admin.register(Organizer)
class OrganizerAdmin(admin.ModelAdmin):
    list_display = ("organization_name", "user", "created_at")
    search_fields = ("organization_name", "user__username", "user__email")


@admin.register(Exhibitor)
class ExhibitorAdmin(admin.ModelAdmin):
    list_display = ("company_name", "user", "created_at")
    search_fields = ("company_name", "user__username", "user__email")
