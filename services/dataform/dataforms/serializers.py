"""Serializers for the data form service."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from django.conf import settings
from rest_framework import serializers

from .models import Record
from .schema import FIELD_TYPES, TEXT
from .spreadsheets import SUPPORTED_EXTENSIONS

EDIT_OPERATIONS = [
    "set_meta",
    "rename_field_label",
    "update_field",
    "add_field",
    "remove_field",
    "move_field",
    "reset",
    "undo",
]
DIRECTIONS = {"up": -1, "left": -1, "-1": -1, "down": 1, "right": 1, "1": 1, "+1": 1}


class FieldDefinitionSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    label = serializers.CharField(max_length=255, allow_blank=True, required=False)
    type = serializers.ChoiceField(choices=FIELD_TYPES, default=TEXT)
    required = serializers.BooleanField(default=False)


class ColumnDescriptorSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    label = serializers.CharField(max_length=255, allow_blank=True, required=False)
    required = serializers.BooleanField(default=False)


class FormSchemaSerializer(serializers.Serializer):
    """Incoming schema body for create, replace and customization saves."""

    form_name = serializers.CharField(max_length=255, allow_blank=True, required=False)
    title = serializers.CharField(max_length=255, allow_blank=True, required=False)
    header = serializers.CharField(max_length=500, allow_blank=True, required=False)
    submit_text = serializers.CharField(max_length=120, allow_blank=True, required=False)
    fields = FieldDefinitionSerializer(many=True)
    columns = ColumnDescriptorSerializer(many=True, required=False)


class EditOperationSerializer(serializers.Serializer):
    op = serializers.ChoiceField(choices=EDIT_OPERATIONS)
    name = serializers.CharField(max_length=255, required=False)
    label = serializers.CharField(max_length=255, allow_blank=True, required=False)
    type = serializers.ChoiceField(choices=FIELD_TYPES, required=False)
    required = serializers.BooleanField(required=False, allow_null=True, default=None)
    direction = serializers.CharField(required=False)
    values = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    def validate_direction(self, value: str) -> int:
        direction = DIRECTIONS.get(str(value).strip().lower())
        if direction is None:
            raise serializers.ValidationError("Direction must be 'up' or 'down'.")
        return direction

    def to_internal_value(self, data: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        """Drop unset optional arguments so the editor applies its defaults."""

        internal = super().to_internal_value(data)
        return {key: value for key, value in internal.items() if value is not None}


class RecordSerializer(serializers.ModelSerializer):
    form_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Record
        fields = [
            "id",
            "form_id",
            "data",
            "submitted_at",
            "updated_at",
        ]


class RecordSubmissionSerializer(serializers.Serializer):
    form_id = serializers.IntegerField(required=False, allow_null=True)
    data = serializers.DictField()


class ImportRequestSerializer(serializers.Serializer):
    file = serializers.FileField()
    form_id = serializers.IntegerField(required=False, allow_null=True)

    def validate_file(self, upload):  # type: ignore[no-untyped-def]
        extension = Path(upload.name or "").suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise serializers.ValidationError("Please select a file (.xlsx, .xls or .csv).")
        limit = int(getattr(settings, "DATAFORM_IMPORT_MAX_BYTES", 5 * 1024 * 1024))
        if upload.size > limit:
            raise serializers.ValidationError(
                f"File size too large. Please select a file smaller than {limit // (1024 * 1024)}MB."
            )
        return upload
