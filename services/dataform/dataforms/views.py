"""API views for the data form service."""
from __future__ import annotations

from typing import Any, Dict

from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from . import importer, spreadsheets, store
from .cache import last_known_schemas
from .editor import SchemaEditor
from .exceptions import ValidationError
from .models import FormSchema
from .schema import Schema
from .serializers import (
    EditOperationSerializer,
    FormSchemaSerializer,
    ImportRequestSerializer,
    RecordSerializer,
    RecordSubmissionSerializer,
)
from .validation import clean_values


def _owner_id(request: Request) -> str:
    return request.user.id


def _form_id_param(request: Request) -> int | None:
    raw = request.query_params.get("form_id")
    if raw in (None, ""):
        return None
    if not str(raw).isdigit():
        raise ValidationError("form_id must be an integer.", {"form_id": "Must be an integer."})
    return int(raw)


def _schema_payload(schema: Schema, editor: SchemaEditor | None = None) -> Dict[str, Any]:
    payload = schema.to_dict()
    if editor is not None:
        payload["can_undo"] = editor.can_undo
    return payload


def _schema_for(owner_id: str, form_id: int | None) -> Schema:
    if form_id is None:
        return store.load_or_default(owner_id)
    return store.require_schema(owner_id, form_id)


class FormSchemaViewSet(viewsets.GenericViewSet):
    queryset = FormSchema.objects.all()
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["form_name", "title"]
    ordering_fields = ["form_name", "created_at", "updated_at"]
    ordering = ["-created_at"]

    def get_queryset(self):  # type: ignore[override]
        return store.schema_rows(_owner_id(self.request))

    def list(self, request: Request) -> Response:
        rows = self.filter_queryset(self.get_queryset())
        return Response([store.to_schema(row).to_dict() for row in rows])

    def create(self, request: Request) -> Response:
        serializer = FormSchemaSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        schema = Schema.from_dict(serializer.validated_data, owner_id=_owner_id(request))
        saved = store.create_schema(schema)
        last_known_schemas.remember(saved)
        return Response(saved.to_dict(), status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        editor = store.load_editor(_owner_id(request), pk)
        last_known_schemas.remember(editor.schema)
        return Response(_schema_payload(editor.schema, editor))

    def update(self, request: Request, pk: str | None = None) -> Response:
        serializer = FormSchemaSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        editor = store.load_editor(_owner_id(request), pk)
        editor.replace(serializer.validated_data)
        saved = store.save_editor(editor)
        last_known_schemas.remember(saved)
        return Response(_schema_payload(saved, editor))

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        owner_id = _owner_id(request)
        store.delete_schema(owner_id, pk)
        last_known_schemas.forget(owner_id, int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _edit(self, request: Request, pk: str | None, op: str, arguments: Dict[str, Any]) -> Response:
        editor = store.load_editor(_owner_id(request), pk)
        editor.apply_operation(op, arguments)
        saved = store.save_editor(editor)
        last_known_schemas.remember(saved)
        return Response(_schema_payload(saved, editor))

    @action(detail=True, methods=["post"], url_path="edit")
    def edit(self, request: Request, pk: str | None = None) -> Response:
        """Apply a single editor operation such as ``move_field``."""

        serializer = EditOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        arguments = dict(serializer.validated_data)
        return self._edit(request, pk, arguments.pop("op"), arguments)

    @action(detail=True, methods=["post"], url_path="undo")
    def undo(self, request: Request, pk: str | None = None) -> Response:
        return self._edit(request, pk, "undo", {})

    @action(detail=True, methods=["post"], url_path="reset")
    def reset(self, request: Request, pk: str | None = None) -> Response:
        return self._edit(request, pk, "reset", {})

    @action(detail=True, methods=["get"], url_path="template")
    def template(self, request: Request, pk: str | None = None) -> HttpResponse:
        """Download a CSV whose header row matches the import columns."""

        schema = store.require_schema(_owner_id(request), pk)
        response = HttpResponse(
            spreadsheets.write_csv(importer.sample_rows(schema)), content_type="text/csv; charset=utf-8"
        )
        response["Content-Disposition"] = 'attachment; filename="sample_data.csv"'
        return response


class CustomizationView(APIView):
    """The owner's single default schema."""

    def get(self, request: Request) -> Response:
        schema = store.load_or_default(_owner_id(request))
        last_known_schemas.remember(schema)
        return Response(schema.to_dict())

    def put(self, request: Request) -> Response:
        serializer = FormSchemaSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        owner_id = _owner_id(request)
        existing = store.load_schema(owner_id)
        if existing is None:
            saved = store.save_schema(Schema.from_dict(serializer.validated_data, owner_id=owner_id, is_default=True))
        else:
            editor = store.load_editor(owner_id, existing.form_id)
            editor.replace(serializer.validated_data)
            saved = store.save_editor(editor)
        last_known_schemas.remember(saved)
        return Response({"message": "Customization saved successfully", "data": saved.to_dict()})

    post = put


class LastKnownSchemaView(APIView):
    def get(self, request: Request) -> Response:
        cached = last_known_schemas.peek(_owner_id(request))
        if cached is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(cached)


class ImportView(APIView):
    """Bulk import of a spreadsheet upload into records."""

    parser_classes = [MultiPartParser, FormParser]

    def post(self, request: Request) -> Response:
        serializer = ImportRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        owner_id = _owner_id(request)
        schema = _schema_for(owner_id, serializer.validated_data.get("form_id"))
        upload = serializer.validated_data["file"]
        rows = spreadsheets.read_rows(upload.name, upload.read())
        report = importer.run_import(rows, schema, owner_id, form_id=schema.form_id)
        status_code = status.HTTP_200_OK if report.succeeded else status.HTTP_400_BAD_REQUEST
        return Response(report.to_dict(), status=status_code)


class RecordViewSet(viewsets.ViewSet):
    def list(self, request: Request) -> Response:
        records = store.find_records(
            _owner_id(request),
            form_id=_form_id_param(request),
            ordering=request.query_params.get("ordering") or None,
            search=request.query_params.get("search") or None,
        )
        return Response(RecordSerializer(records, many=True).data)

    def create(self, request: Request) -> Response:
        serializer = RecordSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        owner_id = _owner_id(request)
        schema = _schema_for(owner_id, serializer.validated_data.get("form_id"))
        data = clean_values(serializer.validated_data["data"], schema)
        record = store.insert_record(owner_id, data, form_id=schema.form_id)
        return Response(RecordSerializer(record).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        record = store.get_owned_record(pk, _owner_id(request))
        return Response(RecordSerializer(record).data)

    def _save(self, request: Request, pk: str | None, partial: bool) -> Response:
        serializer = RecordSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        owner_id = _owner_id(request)
        record = store.get_owned_record(pk, owner_id)
        schema = _schema_for(owner_id, record.form_id)
        values = dict(record.data or {}) if partial else {}
        values.update(serializer.validated_data["data"])
        data = clean_values(values, schema)
        if partial:
            record = store.update_owned(record.pk, owner_id, data)
        else:
            record = store.replace_owned(record.pk, owner_id, data)
        return Response(RecordSerializer(record).data)

    def update(self, request: Request, pk: str | None = None) -> Response:
        return self._save(request, pk, partial=False)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        return self._save(request, pk, partial=True)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        store.delete_owned(pk, _owner_id(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def health(request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
