"""Route registration for the data form service."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    CustomizationView,
    FormSchemaViewSet,
    ImportView,
    LastKnownSchemaView,
    RecordViewSet,
    health,
)

router = DefaultRouter()
router.register("forms", FormSchemaViewSet, basename="form")
router.register("records", RecordViewSet, basename="record")

urlpatterns = [
    path("healthz/", health, name="dataform-health"),
    path("customization/", CustomizationView.as_view(), name="customization"),
    path("schemas/last-known/", LastKnownSchemaView.as_view(), name="schema-last-known"),
    path("imports/", ImportView.as_view(), name="import"),
    path("", include(router.urls)),
]
