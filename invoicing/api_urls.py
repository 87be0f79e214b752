from django.urls import path

from . import api_views

urlpatterns = [
    path("invoices/<int:invoice_id>", api_views.invoice_detail_api, name="api_invoice_detail"),
    path("invoices/<int:invoice_id>/paid", api_views.mark_invoice_paid_api, name="api_invoice_mark_paid"),
    path(
        "registrations/<int:registration_id>/invoice",
        api_views.registration_invoice_api,
        name="api_registration_invoice",
    ),
]
