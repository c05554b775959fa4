from django.contrib import admin
from django.urls import include, path

admin.autodiscover()

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/documents/", include("documents.api_urls")),
    path("api/", include("inventory.api_urls")),
]
