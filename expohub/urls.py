from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("registrations.api_urls")),
    path("api/", include("stands.api_urls")),
    path("api/", include("equipment.api_urls")),
    path("api/", include("invoicing.api_urls")),
]
