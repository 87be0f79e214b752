from django.urls import path

from . import api_views

urlpatterns = [
    path("registrations", api_views.registrations_api, name="api_registrations"),
    path("registrations/<int:registration_id>", api_views.registration_detail_api, name="api_registration_detail"),
    path(
        "registrations/<int:registration_id>/review",
        api_views.review_registration_api,
        name="api_registration_review",
    ),
    path(
        "registrations/<int:registration_id>/stands",
        api_views.select_stands_api,
        name="api_registration_select_stands",
    ),
    path(
        "registrations/<int:registration_id>/equipment",
        api_views.select_equipment_api,
        name="api_registration_select_equipment",
    ),
    path(
        "registrations/<int:registration_id>/cancel",
        api_views.cancel_registration_api,
        name="api_registration_cancel",
    ),
]
