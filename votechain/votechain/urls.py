"""
URL configuration for votechain project.

All API endpoints live under the versioned `api/v1/` prefix.
"""
from django.contrib import admin
from django.urls import include, path

# API endpoints under a versioned path
api_urlpatterns = [
    path("accounts/", include("accounts.urls")),
    path("blockchain/", include("blockchain.urls")),
    path("ledger/", include("ledger.urls")),
]

urlpatterns = [
    path("api/v1/", include(api_urlpatterns)),
    # Non-API paths like admin and auth
    path("admin/", admin.site.urls),
    path("api-auth/", include("rest_framework.urls")),
]
