"""Tests for the data form engine and API."""
from __future__ import annotations

import io
from datetime import datetime
from unittest import mock

import xlrd
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from openpyxl import Workbook
from rest_framework.test import APIClient
from xlrd.sheet import Cell

from . import store
from .editor import SchemaEditor
from .exceptions import (
    DuplicateFieldError,
    EmptyInputError,
    LockedFieldError,
    NotFoundOrForbidden,
    UnknownFieldError,
    UnsupportedFileError,
    ValidationError,
)
from .importer import run_import, sample_rows
from .models import FormSchema, Record
from .resolver import aliases_for, build_alias_table, resolve
from .schema import (
    LOCKED_FIELDS,
    ColumnDescriptor,
    FieldDefinition,
    Schema,
    default_schema,
    is_locked,
    reconcile,
    sync_column_order,
)
from .spreadsheets import read_rows, write_csv
from .validation import clean_values, coerce_number


class DefaultSchemaTests(SimpleTestCase):
    def test_default_contains_only_locked_fields(self) -> None:
        schema = default_schema(owner_id="owner-1")

        self.assertEqual(schema.field_names(), ["number", "email"])
        self.assertEqual([column.name for column in schema.columns], ["number", "email"])
        self.assertTrue(all(column.required for column in schema.columns))
        self.assertTrue(schema.form_name.startswith("Form-"))
        self.assertEqual(len(schema.form_name), len("Form-") + 6)

    def test_form_names_are_randomised(self) -> None:
        names = {default_schema().form_name for _ in range(5)}
        self.assertGreater(len(names), 1)

    def test_lock_predicate(self) -> None:
        self.assertTrue(is_locked("number"))
        self.assertTrue(is_locked("email"))
        self.assertFalse(is_locked("name"))


class ReconcileTests(SimpleTestCase):
    def test_locked_fields_are_inserted_and_overwritten(self) -> None:
        schema = Schema.from_dict(
            {
                "fields": [
                    {"name": "name", "label": "Name", "type": "text", "required": True},
                    {"name": "email", "label": "", "type": "text", "required": False},
                ]
            }
        )

        email = schema.get_field("email")
        self.assertEqual((email.label, email.type, email.required), ("Email", "email", True))
        self.assertEqual(schema.field_names(), ["name", "email", "number"])
        number = schema.get_field("number")
        self.assertEqual((number.type, number.required), ("tel", True))
        for definition in LOCKED_FIELDS:
            self.assertTrue(schema.get_column(definition.name).required)

    def test_customised_locked_label_survives(self) -> None:
        schema = Schema.from_dict({"fields": [{"name": "email", "label": "Work Email", "type": "email"}]})

        self.assertEqual(schema.get_field("email").label, "Work Email")
        self.assertEqual(schema.get_column("email").label, "Work Email")

    def test_locked_column_is_forced_required(self) -> None:
        schema = Schema.from_dict(
            {
                "fields": [{"name": "number", "label": "Phone", "type": "tel"}],
                "columns": [{"name": "number", "label": "Mobile", "required": False}],
            }
        )

        column = schema.get_column("number")
        self.assertEqual(column.label, "Mobile")
        self.assertTrue(column.required)
        self.assertEqual([item.name for item in schema.columns], ["number", "email"])

    def test_reconcile_is_idempotent(self) -> None:
        raw = Schema(
            fields=[FieldDefinition("hobby", "Hobby"), FieldDefinition("email", "", "text", False)],
            columns=[ColumnDescriptor("legacy", "Legacy"), ColumnDescriptor("hobby", "Hobby")],
        )

        once = reconcile(raw)
        self.assertEqual(reconcile(once), once)
        self.assertIsNot(once, raw)

    def test_columns_default_to_field_projection(self) -> None:
        schema = Schema.from_dict(
            {
                "fields": [
                    {"name": "hobby", "label": "Hobby"},
                    {"name": "age", "label": "Age", "type": "number", "required": True},
                ]
            }
        )

        age = schema.get_column("age")
        self.assertEqual((age.label, age.required), ("Age", True))

    def test_duplicate_field_names_are_rejected(self) -> None:
        with self.assertRaises(DuplicateFieldError):
            Schema.from_dict({"fields": [{"name": "hobby"}, {"name": "hobby"}]})

    def test_unknown_field_type_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            Schema.from_dict({"fields": [{"name": "colour", "type": "rgb"}]})


class ColumnOrderTests(SimpleTestCase):
    def test_shared_columns_follow_fields_and_others_trail(self) -> None:
        fields = [FieldDefinition("b", "B"), FieldDefinition("a", "A")]
        columns = [
            ColumnDescriptor("x", "X"),
            ColumnDescriptor("a", "A"),
            ColumnDescriptor("y", "Y"),
            ColumnDescriptor("b", "B"),
        ]

        ordered = sync_column_order(fields, columns)

        self.assertEqual([column.name for column in ordered], ["b", "a", "x", "y"])


def editable_schema() -> Schema:
    return Schema.from_dict(
        {
            "form_name": "Contacts",
            "fields": [
                {"name": "name", "label": "Name", "type": "text", "required": True},
                {"name": "number", "label": "Phone Number", "type": "tel", "required": True},
                {"name": "email", "label": "Email", "type": "email", "required": True},
                {"name": "hobby", "label": "Hobby", "type": "text"},
            ],
            "columns": [
                {"name": "legacy_id", "label": "Legacy ID"},
                {"name": "name", "label": "Name", "required": True},
                {"name": "number", "label": "Phone Number", "required": True},
                {"name": "email", "label": "Email", "required": True},
                {"name": "hobby", "label": "Hobby"},
            ],
        },
        owner_id="owner-1",
    )


class SchemaEditorTests(SimpleTestCase):
    def setUp(self) -> None:
        self.editor = SchemaEditor(editable_schema())

    def assertLockedFieldsIntact(self, schema: Schema) -> None:
        for canonical in LOCKED_FIELDS:
            current = schema.get_field(canonical.name)
            self.assertIsNotNone(current)
            self.assertEqual(current.type, canonical.type)
            self.assertEqual(current.required, canonical.required)
            column = schema.get_column(canonical.name)
            self.assertIsNotNone(column)
            self.assertTrue(column.required)

    def test_locked_fields_survive_any_edit_sequence(self) -> None:
        self.editor.add_field()
        self.editor.move_field("email", -1)
        self.editor.rename_field_label("number", "Mobile")
        self.editor.remove_field("hobby")
        self.editor.update_field("name", required=False)
        self.editor.set_meta(title="Signup", submit_text="Send")
        self.editor.reset()
        self.editor.undo()

        self.assertLockedFieldsIntact(self.editor.schema)
        self.assertEqual(self.editor.schema.title, "Signup")

    def test_remove_locked_field_fails_and_changes_nothing(self) -> None:
        before = self.editor.schema.copy()

        for name in ("number", "email"):
            with self.assertRaises(LockedFieldError):
                self.editor.remove_field(name)

        self.assertEqual(self.editor.schema, before)
        self.assertFalse(self.editor.can_undo)

    def test_locked_type_and_required_cannot_change(self) -> None:
        with self.assertRaises(LockedFieldError):
            self.editor.update_field("email", type="text")
        with self.assertRaises(LockedFieldError):
            self.editor.update_field("number", required=False)

    def test_locked_label_can_be_renamed(self) -> None:
        schema = self.editor.rename_field_label("email", "Work Email")

        self.assertEqual(schema.get_field("email").label, "Work Email")
        self.assertEqual(schema.get_field("email").name, "email")
        self.assertEqual(schema.get_column("email").label, "Work Email")
        self.assertLockedFieldsIntact(schema)

    def test_rename_keeps_name_stable(self) -> None:
        schema = self.editor.rename_field_label("hobby", "Pastime")

        self.assertEqual(schema.get_field("hobby").label, "Pastime")
        self.assertIsNone(schema.get_field("Pastime"))

    def test_move_permutes_fields_and_resyncs_columns(self) -> None:
        names_before = set(self.editor.schema.field_names())

        schema = self.editor.move_field("hobby", -1)

        self.assertEqual(set(schema.field_names()), names_before)
        self.assertEqual(schema.field_names(), ["name", "number", "hobby", "email"])
        self.assertEqual(
            [column.name for column in schema.columns],
            ["name", "number", "hobby", "email", "legacy_id"],
        )

    def test_move_at_boundary_keeps_fields_but_takes_snapshot(self) -> None:
        before = self.editor.schema.copy()

        self.editor.move_field("name", -1)
        self.editor.move_field("hobby", 1)

        self.assertEqual(self.editor.schema, before)
        self.assertTrue(self.editor.can_undo)
        self.assertEqual(self.editor.undo(), before)

    def test_undo_after_noop_edit_keeps_earlier_edit(self) -> None:
        editor = SchemaEditor(default_schema(owner_id="owner-1"))
        editor.add_field()

        editor.move_field("field_3", 1)
        restored = editor.undo()

        self.assertEqual(restored.field_names(), ["number", "email", "field_3"])

    def test_add_field_generates_unique_placeholder(self) -> None:
        self.editor.add_field()
        schema = self.editor.add_field(type="number")

        self.assertEqual(schema.field_names()[-2:], ["field_5", "field_6"])
        self.assertEqual(schema.get_field("field_5").label, "Field 5")
        self.assertEqual(schema.get_field("field_6").type, "number")
        self.assertIsNotNone(schema.get_column("field_6"))

    def test_add_field_with_taken_name_is_noop(self) -> None:
        before = self.editor.schema.copy()

        self.editor.add_field(label="Hobby")

        self.assertEqual(self.editor.schema, before)
        self.assertEqual(self.editor.undo(), before)

    def test_remove_editable_field_keeps_its_column(self) -> None:
        schema = self.editor.remove_field("hobby")

        self.assertIsNone(schema.get_field("hobby"))
        self.assertEqual(
            [column.name for column in schema.columns],
            ["name", "number", "email", "hobby", "legacy_id"],
        )

    def test_unknown_field_is_reported(self) -> None:
        with self.assertRaises(UnknownFieldError):
            self.editor.remove_field("missing")
        with self.assertRaises(ValidationError):
            self.editor.update_field("hobby", type="rgb")

    def test_reset_restores_default_with_new_name(self) -> None:
        schema = self.editor.reset()

        self.assertEqual(schema.field_names(), ["number", "email"])
        self.assertNotEqual(schema.form_name, "Contacts")
        self.assertEqual(schema.owner_id, "owner-1")

    def test_undo_restores_previous_schema_once(self) -> None:
        before = self.editor.schema.copy()
        self.editor.set_meta(title="Changed")

        restored = self.editor.undo()
        self.assertEqual(restored, before)
        self.assertFalse(self.editor.can_undo)

        again = self.editor.undo()
        self.assertEqual(again, before)

    def test_only_one_level_of_history_is_kept(self) -> None:
        self.editor.set_meta(title="First")
        after_first = self.editor.schema.copy()
        self.editor.set_meta(title="Second")

        self.editor.undo()
        self.editor.undo()

        self.assertEqual(self.editor.schema, after_first)

    def test_apply_operation_dispatches_by_name(self) -> None:
        schema = self.editor.apply_operation("move_field", {"name": "email", "direction": -1})
        self.assertEqual(schema.field_names(), ["name", "email", "number", "hobby"])

        with self.assertRaises(ValidationError):
            self.editor.apply_operation("explode", {})
        with self.assertRaises(ValidationError):
            self.editor.apply_operation("remove_field", {})


def people_schema(email_label: str = "Email") -> Schema:
    return Schema.from_dict(
        {
            "fields": [
                {"name": "name", "label": "Name", "required": True},
                {"name": "number", "label": "Phone Number", "type": "tel"},
                {"name": "email", "label": email_label, "type": "email"},
                {"name": "department", "label": "Dept"},
            ]
        }
    )


class ResolverTests(SimpleTestCase):
    def test_default_alias_matches(self) -> None:
        values = resolve({"Email Address": "ada@example.com", "Mobile": "5550101"}, default_schema())

        self.assertEqual(values["email"], "ada@example.com")
        self.assertEqual(values["number"], "5550101")

    def test_custom_label_wins_over_defaults(self) -> None:
        row = {"Email": "home@example.com", "Work Email": "work@example.com"}

        values = resolve(row, people_schema(email_label="Work Email"))

        self.assertEqual(values["email"], "work@example.com")

    def test_blank_values_fall_through_to_next_alias(self) -> None:
        values = resolve({"Name": "   ", "Full Name": "Ada Lovelace"}, people_schema())

        self.assertEqual(values["name"], "Ada Lovelace")

    def test_unmatched_field_resolves_to_empty_string(self) -> None:
        values = resolve({"Unrelated": "x"}, people_schema())

        self.assertEqual(values["department"], "")
        self.assertEqual(values["name"], "")

    def test_custom_field_aliases(self) -> None:
        self.assertEqual(aliases_for("department", people_schema()), ["Dept", "department"])

    def test_columns_without_fields_are_resolved(self) -> None:
        schema = Schema.from_dict(
            {
                "fields": [{"name": "hobby", "label": "Hobby"}],
                "columns": [{"name": "hobby", "label": "Hobby"}, {"name": "legacy_id", "label": "Legacy ID"}],
            }
        )

        table = build_alias_table(schema)
        values = resolve({"Legacy ID": 17, "HOBBY": "Chess"}, schema, table)

        self.assertIn("legacy_id", table)
        self.assertEqual(values["legacy_id"], 17)
        self.assertEqual(values["hobby"], "Chess")


class ValidationTests(SimpleTestCase):
    def test_numbers_are_parsed(self) -> None:
        self.assertEqual(coerce_number("41"), 41)
        self.assertEqual(coerce_number(" 2.5 "), 2.5)
        self.assertEqual(coerce_number(36.0), 36)

    def test_out_of_range_numbers_are_rejected(self) -> None:
        for value in ("1e5000", "1e999999999", 10**20, "nan", "inf", True):
            with self.assertRaises(ValueError):
                coerce_number(value)

    def test_huge_exponent_is_reported_as_not_a_number(self) -> None:
        schema = Schema.from_dict({"fields": [{"name": "age", "label": "Age", "type": "number"}]})

        with self.assertRaises(ValidationError) as caught:
            clean_values({"age": "1e5000", "number": "5550101", "email": "ada@example.com"}, schema)

        self.assertEqual(caught.exception.errors, {"age": "Age must be a number"})


def import_schema() -> Schema:
    return Schema.from_dict(
        {
            "fields": [
                {"name": "name", "label": "Name", "required": True},
                {"name": "age", "label": "Age", "type": "number"},
                {"name": "number", "label": "Phone Number", "type": "tel"},
                {"name": "email", "label": "Email", "type": "email"},
            ]
        },
        owner_id="owner-1",
    )


def contact_row(**overrides):
    row = {"Name": "Ada", "Age": 36, "Phone Number": 5550101.0, "Email": "ada@example.com"}
    row.update(overrides)
    return row


class RunImportTests(TestCase):
    def test_partial_import_reports_failed_rows(self) -> None:
        rows = [
            contact_row(),
            contact_row(Name=""),
            contact_row(Name="Grace", **{"Phone Number": 5550102.0, "Email": "grace@example.com"}),
        ]

        report = run_import(rows, import_schema(), "owner-1")

        self.assertEqual(report.imported_count, 2)
        self.assertEqual(report.total_rows, 3)
        self.assertEqual(report.errors, ["Row 2: Missing required fields (Name)"])
        self.assertEqual(report.message, "Successfully imported 2 out of 3 records")
        numbers = sorted(record.data["number"] for record in Record.objects.filter(owner_id="owner-1"))
        self.assertEqual(numbers, ["5550101", "5550102"])

    def test_invalid_email_row_is_not_stored(self) -> None:
        report = run_import([contact_row(Email="not-an-email")], import_schema(), "owner-1")

        self.assertEqual(report.imported_count, 0)
        self.assertEqual(report.errors, ["Row 1: Invalid email format"])
        self.assertEqual(report.to_dict()["message"], "No data could be imported")
        self.assertFalse(Record.objects.exists())

    def test_non_numeric_value_for_number_field(self) -> None:
        report = run_import([contact_row(Age="abc")], import_schema(), "owner-1")

        self.assertEqual(report.errors, ["Row 1: Age must be a number"])

    def test_numbers_are_stored_as_numbers(self) -> None:
        run_import([contact_row(Age="41")], import_schema(), "owner-1")

        record = Record.objects.get()
        self.assertEqual(record.data["age"], 41)
        self.assertEqual(record.data["name"], "Ada")

    def test_empty_input_is_rejected(self) -> None:
        with self.assertRaises(EmptyInputError):
            run_import([], import_schema(), "owner-1")

    def test_storage_failure_skips_only_that_row(self) -> None:
        calls = []

        def flaky_insert(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise DatabaseError("disk full")
            return store.insert_record(**kwargs)

        report = run_import([contact_row(), contact_row(Name="Grace")], import_schema(), "owner-1", insert=flaky_insert)

        self.assertEqual(report.imported_count, 1)
        self.assertEqual(report.errors, ["Row 1: disk full"])
        self.assertEqual(Record.objects.get().data["name"], "Grace")

    def test_error_list_is_truncated(self) -> None:
        rows = [contact_row(Name="") for _ in range(12)]

        with self.settings(DATAFORM_IMPORT_ERROR_LIMIT=10):
            report = run_import(rows, import_schema(), "owner-1")

        self.assertEqual(len(report.errors), 10)
        self.assertEqual(report.errors[-1], "Row 10: Missing required fields (Name)")

    def test_records_are_linked_to_form(self) -> None:
        saved = store.save_schema(import_schema())

        run_import([contact_row()], saved, "owner-1", form_id=saved.form_id)

        self.assertEqual(Record.objects.get().form_id, saved.form_id)


class SpreadsheetTests(SimpleTestCase):
    def test_first_sheet_is_read_and_blank_rows_skipped(self) -> None:
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["Name", "Phone Number", "Email"])
        sheet.append(["Ada", 5550101, "ada@example.com"])
        sheet.append(["  ", None, None])
        sheet.append(["Grace", None, " grace@example.com "])
        other = workbook.create_sheet("Ignored")
        other.append(["Name"])
        other.append(["Nobody"])
        buffer = io.BytesIO()
        workbook.save(buffer)

        rows = read_rows("contacts.xlsx", buffer.getvalue())

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0], {"Name": "Ada", "Phone Number": 5550101, "Email": "ada@example.com"})
        self.assertEqual(rows[1], {"Name": "Grace", "Phone Number": "", "Email": "grace@example.com"})

    def test_csv_headers_are_made_unique(self) -> None:
        data = "Name,Name,,Email\r\nAda,Lovelace,x,ada@example.com\r\n".encode("utf-8-sig")

        rows = read_rows("contacts.CSV", data)

        self.assertEqual(list(rows[0]), ["Name", "Name_1", "__EMPTY", "Email"])
        self.assertEqual(rows[0]["Name_1"], "Lovelace")

    def test_generated_header_never_shadows_a_real_one(self) -> None:
        rows = read_rows("codes.csv", b"A,A_1,A\r\nfirst,second,third\r\n")

        self.assertEqual(rows[0], {"A": "first", "A_1": "second", "A_2": "third"})

    @mock.patch("dataforms.spreadsheets.xlrd.open_workbook")
    def test_legacy_xls_first_sheet_is_read(self, mock_open: mock.Mock) -> None:
        header = [Cell(xlrd.XL_CELL_TEXT, label) for label in ("Name", "Phone Number", "Joined")]
        data = [
            Cell(xlrd.XL_CELL_TEXT, "Ada"),
            Cell(xlrd.XL_CELL_NUMBER, 5550101.0),
            Cell(xlrd.XL_CELL_DATE, 45322.0),
        ]
        blank = [Cell(xlrd.XL_CELL_EMPTY, ""), Cell(xlrd.XL_CELL_BLANK, ""), Cell(xlrd.XL_CELL_EMPTY, "")]
        grid = [header, data, blank]
        sheet = mock.Mock(nrows=len(grid))
        sheet.row.side_effect = lambda index: grid[index]
        mock_open.return_value = mock.Mock(datemode=0, **{"sheet_by_index.return_value": sheet})

        rows = read_rows("legacy.XLS", b"workbook bytes")

        mock_open.assert_called_once_with(file_contents=b"workbook bytes", on_demand=True)
        mock_open.return_value.sheet_by_index.assert_called_once_with(0)
        self.assertEqual(rows, [{"Name": "Ada", "Phone Number": 5550101.0, "Joined": datetime(2024, 1, 31)}])

    def test_unsupported_files_are_rejected(self) -> None:
        with self.assertRaises(UnsupportedFileError):
            read_rows("notes.txt", b"Name\nAda\n")
        with self.assertRaises(UnsupportedFileError):
            read_rows("corrupt.xls", b"this is not a workbook at all")
        with self.assertRaises(UnsupportedFileError):
            read_rows("broken.xlsx", b"not a workbook")

    def test_header_only_sheet_has_no_rows(self) -> None:
        self.assertEqual(read_rows("empty.csv", b"Name,Email\r\n"), [])

    def test_template_matches_column_labels(self) -> None:
        schema = default_schema()
        schema.columns[1].label = "Work Email"

        content = write_csv(sample_rows(schema))

        self.assertEqual(
            content.splitlines(), ["Phone Number,Work Email", "123-456-7890,john@example.com"]
        )


class StoreTests(TestCase):
    def test_default_schema_is_upserted_per_owner(self) -> None:
        first = default_schema(owner_id="owner-1")
        first.is_default = True
        saved = store.save_schema(first)

        second = default_schema(owner_id="owner-1", form_name="Renamed")
        second.is_default = True
        resaved = store.save_schema(second)

        self.assertEqual(resaved.form_id, saved.form_id)
        self.assertEqual(store.load_schema("owner-1").form_name, "Renamed")
        self.assertEqual(FormSchema.objects.count(), 1)

    def test_create_schema_always_adds_a_row(self) -> None:
        schema = Schema.from_dict({"form_name": "Leads", "fields": []}, owner_id="owner-1")

        created = store.create_schema(schema)

        self.assertIsNotNone(created.form_id)
        self.assertFalse(created.is_default)
        with self.assertRaises(ValidationError):
            store.create_schema(created)

    def test_snapshot_round_trips_through_storage(self) -> None:
        created = store.create_schema(Schema.from_dict({"fields": []}, owner_id="owner-1"))
        editor = store.load_editor("owner-1", created.form_id)
        editor.set_meta(title="Volunteers")
        store.save_editor(editor)

        reloaded = store.load_editor("owner-1", created.form_id)

        self.assertIsInstance(reloaded, SchemaEditor)
        self.assertTrue(reloaded.can_undo)
        self.assertEqual(reloaded.undo().title, created.title)

    def test_foreign_ids_are_not_found(self) -> None:
        created = store.create_schema(Schema.from_dict({"fields": []}, owner_id="owner-1"))

        with self.assertRaises(NotFoundOrForbidden):
            store.require_schema("owner-2", created.form_id)
        with self.assertRaises(NotFoundOrForbidden):
            store.delete_schema("owner-2", created.form_id)
        self.assertIsNone(store.load_schema("owner-2", created.form_id))

    def test_update_owned_merges_patch(self) -> None:
        record = store.insert_record("owner-1", {"name": "Ada", "hobby": "Chess"})

        updated = store.update_owned(record.pk, "owner-1", {"hobby": "Go"})

        self.assertEqual(updated.data, {"name": "Ada", "hobby": "Go"})
        with self.assertRaises(NotFoundOrForbidden):
            store.update_owned(record.pk, "owner-2", {"hobby": "Go"})

    def test_delete_all_for_form(self) -> None:
        created = store.create_schema(Schema.from_dict({"fields": []}, owner_id="owner-1"))
        store.insert_record("owner-1", {"name": "a"}, form_id=created.form_id)
        store.insert_record("owner-1", {"name": "b"})

        self.assertEqual(store.delete_all_for_form(created.form_id), 1)
        self.assertEqual(store.find_records("owner-1").count(), 1)

    def test_ordering_rejects_lookups(self) -> None:
        with self.assertRaises(ValidationError):
            store.find_records("owner-1", ordering="-data__name")


def csv_upload(content: str, name: str = "contacts.csv") -> SimpleUploadedFile:
    return SimpleUploadedFile(name, content.encode("utf-8"), content_type="text/csv")


class ApiTestCase(TestCase):
    owner_id = "owner-1"

    def setUp(self) -> None:
        cache.clear()
        self.client = APIClient()
        self.client.credentials(HTTP_X_OWNER_ID=self.owner_id)

    def create_form(self, **payload):
        payload.setdefault("fields", [{"name": "name", "label": "Name", "required": True}])
        response = self.client.post(reverse("form-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        return response.data


class AccessTests(ApiTestCase):
    def test_owner_header_is_required(self) -> None:
        response = APIClient().get(reverse("form-list"))
        self.assertEqual(response.status_code, 401)

    def test_health_is_public(self) -> None:
        response = APIClient().get(reverse("dataform-health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")

    def test_long_owner_ids_are_rejected_not_truncated(self) -> None:
        alice = APIClient()
        alice.credentials(HTTP_X_OWNER_ID="u" * 64 + "-alice")
        bob = APIClient()
        bob.credentials(HTTP_X_OWNER_ID="u" * 64 + "-bob")

        created = alice.post(
            reverse("record-list"), {"data": {"number": "5550101", "email": "ada@example.com"}}, format="json"
        )
        listed = bob.get(reverse("record-list"))

        self.assertEqual(created.status_code, 401)
        self.assertEqual(listed.status_code, 401)
        self.assertFalse(Record.objects.exists())

    def test_owner_id_at_column_width_is_accepted(self) -> None:
        client = APIClient()
        client.credentials(HTTP_X_OWNER_ID="u" * 64)

        response = client.get(reverse("record-list"))

        self.assertEqual(response.status_code, 200)

    def test_other_owners_forms_are_not_found(self) -> None:
        form = self.create_form()
        intruder = APIClient()
        intruder.credentials(HTTP_X_OWNER_ID="owner-2")

        response = intruder.get(reverse("form-detail", args=[form["id"]]))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["message"], "Form not found")
        self.assertEqual(intruder.get(reverse("form-list")).data, [])


class FormSchemaApiTests(ApiTestCase):
    def test_create_assigns_random_name_and_locked_fields(self) -> None:
        form = self.create_form()

        self.assertTrue(form["form_name"].startswith("Form-"))
        self.assertEqual([item["name"] for item in form["fields"]], ["name", "number", "email"])
        self.assertEqual(form["owner_id"], self.owner_id)

    def test_duplicate_form_name_is_rejected(self) -> None:
        self.create_form(form_name="Leads")

        response = self.client.post(reverse("form-list"), {"form_name": "Leads", "fields": []}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["message"], "Form name already exists")

    def test_move_then_undo_twice(self) -> None:
        form = self.create_form(fields=[{"name": "name", "label": "Name"}, {"name": "hobby", "label": "Hobby"}])
        edit_url = reverse("form-edit", args=[form["id"]])
        undo_url = reverse("form-undo", args=[form["id"]])

        moved = self.client.post(edit_url, {"op": "move_field", "name": "hobby", "direction": "up"}, format="json")
        self.assertEqual(moved.status_code, 200)
        self.assertEqual([item["name"] for item in moved.data["fields"]], ["hobby", "name", "number", "email"])
        self.assertTrue(moved.data["can_undo"])

        undone = self.client.post(undo_url, format="json")
        self.assertEqual([item["name"] for item in undone.data["fields"]], ["name", "hobby", "number", "email"])
        self.assertFalse(undone.data["can_undo"])

        again = self.client.post(undo_url, format="json")
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.data["fields"], undone.data["fields"])

    def test_undo_survives_reload(self) -> None:
        form = self.create_form()
        self.client.post(
            reverse("form-edit", args=[form["id"]]),
            {"op": "set_meta", "values": {"title": "Volunteers"}},
            format="json",
        )

        detail = self.client.get(reverse("form-detail", args=[form["id"]]))

        self.assertEqual(detail.data["title"], "Volunteers")
        self.assertTrue(detail.data["can_undo"])

    def test_locked_field_cannot_be_removed(self) -> None:
        form = self.create_form()

        response = self.client.post(
            reverse("form-edit", args=[form["id"]]), {"op": "remove_field", "name": "email"}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("email", [item["name"] for item in store.require_schema(self.owner_id, form["id"]).fields])

    def test_replace_keeps_identity(self) -> None:
        form = self.create_form(form_name="Leads")

        response = self.client.put(
            reverse("form-detail", args=[form["id"]]),
            {"title": "Sales leads", "fields": [{"name": "company", "label": "Company"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["id"], form["id"])
        self.assertEqual(response.data["form_name"], "Leads")
        self.assertEqual([item["name"] for item in response.data["fields"]], ["company", "number", "email"])

    def test_delete_cascades_to_records(self) -> None:
        doomed = self.create_form(form_name="Doomed")
        kept = self.create_form(form_name="Kept")
        store.insert_record(self.owner_id, {"name": "a"}, form_id=doomed["id"])
        store.insert_record(self.owner_id, {"name": "b"}, form_id=doomed["id"])
        store.insert_record(self.owner_id, {"name": "c"}, form_id=kept["id"])

        response = self.client.delete(reverse("form-detail", args=[doomed["id"]]))

        self.assertEqual(response.status_code, 204)
        self.assertFalse(FormSchema.objects.filter(pk=doomed["id"]).exists())
        self.assertEqual(Record.objects.filter(form_id=doomed["id"]).count(), 0)
        self.assertEqual(Record.objects.filter(form_id=kept["id"]).count(), 1)

    def test_template_download(self) -> None:
        form = self.create_form()

        response = self.client.get(reverse("form-template", args=[form["id"]]))

        self.assertEqual(response.status_code, 200)
        self.assertIn("sample_data.csv", response["Content-Disposition"])
        self.assertTrue(response.content.decode("utf-8").startswith("Name,Phone Number,Email\r\n"))


class CustomizationApiTests(ApiTestCase):
    def test_default_is_returned_until_saved(self) -> None:
        response = self.client.get(reverse("customization"))

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["id"])
        self.assertEqual([item["name"] for item in response.data["fields"]], ["number", "email"])

    def test_save_and_reload(self) -> None:
        payload = {"title": "Signup", "fields": [{"name": "name", "label": "Name", "required": True}]}

        saved = self.client.put(reverse("customization"), payload, format="json")
        self.assertEqual(saved.status_code, 200)
        self.assertEqual(saved.data["message"], "Customization saved successfully")

        self.client.put(reverse("customization"), dict(payload, title="Signup v2"), format="json")
        loaded = self.client.get(reverse("customization"))

        self.assertEqual(loaded.data["id"], saved.data["data"]["id"])
        self.assertEqual(loaded.data["title"], "Signup v2")
        self.assertEqual(FormSchema.objects.filter(owner_id=self.owner_id, is_default=True).count(), 1)

    def test_last_known_schema(self) -> None:
        self.assertEqual(self.client.get(reverse("schema-last-known")).status_code, 204)

        self.client.get(reverse("customization"))
        response = self.client.get(reverse("schema-last-known"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["owner_id"], self.owner_id)


class ImportApiTests(ApiTestCase):
    def post_upload(self, upload, form_id=None):
        payload = {"file": upload}
        if form_id is not None:
            payload["form_id"] = form_id
        return self.client.post(reverse("import"), payload, format="multipart")

    def test_partial_import(self) -> None:
        upload = csv_upload(
            "Phone Number,Email\n5550101,ada@example.com\n5550102,\n5550103,grace@example.com\n"
        )

        response = self.post_upload(upload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["importedCount"], 2)
        self.assertEqual(response.data["totalRows"], 3)
        self.assertEqual(response.data["errors"], ["Row 2: Missing required fields (Email)"])
        self.assertEqual(response.data["message"], "Successfully imported 2 out of 3 records")

    def test_import_into_form(self) -> None:
        form = self.create_form()
        upload = csv_upload("Full Name,Mobile,Email Address\nAda,5550101,ada@example.com\n")

        response = self.post_upload(upload, form_id=form["id"])

        self.assertEqual(response.status_code, 200)
        record = Record.objects.get(form_id=form["id"])
        self.assertEqual(record.data, {"name": "Ada", "number": "5550101", "email": "ada@example.com"})

    def test_all_rows_invalid(self) -> None:
        response = self.post_upload(csv_upload("Phone Number,Email\n,bad\n"))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["message"], "No data could be imported")
        self.assertEqual(response.data["importedCount"], 0)

    def test_header_only_file(self) -> None:
        response = self.post_upload(csv_upload("Phone Number,Email\n"))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["message"], "Excel file is empty or has no data")

    def test_unsupported_extension(self) -> None:
        response = self.post_upload(csv_upload("hello", name="notes.txt"))

        self.assertEqual(response.status_code, 400)
        self.assertIn("file", response.data["errors"])


class RecordApiTests(ApiTestCase):
    def test_record_lifecycle(self) -> None:
        created = self.client.post(
            reverse("record-list"), {"data": {"number": "5550101", "email": "ada@example.com"}}, format="json"
        )
        self.assertEqual(created.status_code, 201)
        record_id = created.data["id"]

        listed = self.client.get(reverse("record-list"))
        self.assertEqual([item["id"] for item in listed.data], [record_id])

        updated = self.client.put(
            reverse("record-detail", args=[record_id]),
            {"data": {"number": "5550199", "email": "ada@example.com"}},
            format="json",
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["data"]["number"], "5550199")

        deleted = self.client.delete(reverse("record-detail", args=[record_id]))
        self.assertEqual(deleted.status_code, 204)
        self.assertFalse(Record.objects.exists())

    def test_put_replaces_stored_data(self) -> None:
        record = store.insert_record(self.owner_id, {"number": "5550101", "email": "ada@example.com", "legacy": "x"})

        response = self.client.put(
            reverse("record-detail", args=[record.pk]),
            {"data": {"number": "5550102", "email": "ada@example.com"}},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        record.refresh_from_db()
        self.assertEqual(record.data, {"number": "5550102", "email": "ada@example.com"})

    def test_patch_merges_into_stored_data(self) -> None:
        record = store.insert_record(self.owner_id, {"number": "5550101", "email": "ada@example.com", "legacy": "x"})

        response = self.client.patch(
            reverse("record-detail", args=[record.pk]), {"data": {"number": "5550102"}}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        record.refresh_from_db()
        self.assertEqual(record.data, {"number": "5550102", "email": "ada@example.com", "legacy": "x"})

    def test_oversized_number_is_a_validation_error(self) -> None:
        self.client.put(
            reverse("customization"),
            {"fields": [{"name": "age", "label": "Age", "type": "number"}]},
            format="json",
        )

        response = self.client.post(
            reverse("record-list"),
            {"data": {"age": "1e5000", "number": "5550101", "email": "ada@example.com"}},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["errors"], {"age": "Age must be a number"})
        self.assertFalse(Record.objects.exists())

    def test_invalid_email_is_rejected(self) -> None:
        response = self.client.post(
            reverse("record-list"), {"data": {"number": "5550101", "email": "nope"}}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["errors"], {"email": "Invalid email format"})

    def test_search_and_ordering(self) -> None:
        store.insert_record(self.owner_id, {"name": "Ada", "email": "ada@example.com"})
        store.insert_record(self.owner_id, {"name": "Grace", "email": "grace@example.com"})
        store.insert_record("owner-2", {"name": "Ada", "email": "other@example.com"})

        found = self.client.get(reverse("record-list"), {"search": "ada"})
        ordered = self.client.get(reverse("record-list"), {"ordering": "-name"})

        self.assertEqual([item["data"]["name"] for item in found.data], ["Ada"])
        self.assertEqual([item["data"]["name"] for item in ordered.data], ["Grace", "Ada"])

    def test_other_owners_records_are_hidden(self) -> None:
        record = store.insert_record("owner-2", {"name": "Ada"})

        response = self.client.get(reverse("record-detail", args=[record.pk]))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["message"], "Record not found or access denied")
