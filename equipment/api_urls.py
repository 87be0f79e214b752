from django.urls import path

from . import api_views

urlpatterns = [
    path(
        "events/<int:event_id>/equipment/available",
        api_views.event_available_equipment_api,
        name="api_event_available_equipment",
    ),
]
