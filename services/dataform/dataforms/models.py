"""Database models for the data form service."""
from __future__ import annotations

from django.db import models
from django.db.models import Q

from .schema import DEFAULT_HEADER, DEFAULT_SUBMIT_TEXT, DEFAULT_TITLE


class FormSchema(models.Model):
    """A persisted form definition owned by one user."""

    owner_id = models.CharField(max_length=64, db_index=True)
    form_name = models.CharField(max_length=255)
    title = models.CharField(max_length=255, default=DEFAULT_TITLE)
    header = models.CharField(max_length=500, blank=True, default=DEFAULT_HEADER)
    submit_text = models.CharField(max_length=120, default=DEFAULT_SUBMIT_TEXT)
    fields = models.JSONField(default=list, blank=True)
    columns = models.JSONField(default=list, blank=True)
    previous_snapshot = models.JSONField(null=True, blank=True)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["owner_id", "form_name"], name="unique_form_name_per_owner"),
            models.UniqueConstraint(
                fields=["owner_id"],
                condition=Q(is_default=True),
                name="single_default_form_per_owner",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.form_name} ({self.owner_id})"


class Record(models.Model):
    """One data row collected by direct entry or spreadsheet import."""

    owner_id = models.CharField(max_length=64, db_index=True)
    form = models.ForeignKey(
        FormSchema,
        related_name="records",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    data = models.JSONField(default=dict, blank=True)
    submitted_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-submitted_at", "-id"]
        indexes = [models.Index(fields=["owner_id", "form"], name="record_owner_form_idx")]

    def __str__(self) -> str:
        return f"Record {self.pk} ({self.owner_id})"
