"""URL configuration for the condotrack project."""

from django.contrib import admin
from django.urls import include, path

from . import error_views

handler403 = "condotrack.error_views.handle_403"
handler404 = "condotrack.error_views.handle_404"
handler500 = "condotrack.error_views.handle_500"

urlpatterns = [
    path("healthz", error_views.healthz, name="healthz"),
    path("readyz", error_views.readyz, name="readyz"),
    path("admin/", admin.site.urls),
    path("api/", include("condotrack.api_urls")),
]
