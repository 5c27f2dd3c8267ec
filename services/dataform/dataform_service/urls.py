"""URL configuration for the data form service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("dataforms.urls")),
]
