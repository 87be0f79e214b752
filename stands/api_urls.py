from django.urls import path

from . import api_views

urlpatterns = [
    path("events/<int:event_id>/stands", api_views.event_stands_api, name="api_event_stands"),
    path(
        "events/<int:event_id>/stands/available",
        api_views.event_available_stands_api,
        name="api_event_available_stands",
    ),
    path("plans/<int:plan_id>/stands", api_views.plan_stands_api, name="api_plan_stands"),
]
