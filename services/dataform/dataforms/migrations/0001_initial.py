# Generated manually for initial schema.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FormSchema",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner_id", models.CharField(db_index=True, max_length=64)),
                ("form_name", models.CharField(max_length=255)),
                ("title", models.CharField(default="Data Entry Form", max_length=255)),
                ("header", models.CharField(blank=True, default="Enter the heading", max_length=500)),
                ("submit_text", models.CharField(default="Submit", max_length=120)),
                ("fields", models.JSONField(blank=True, default=list)),
                ("columns", models.JSONField(blank=True, default=list)),
                ("previous_snapshot", models.JSONField(blank=True, null=True)),
                ("is_default", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-created_at", "id"]},
        ),
        migrations.AddConstraint(
            model_name="formschema",
            constraint=models.UniqueConstraint(fields=("owner_id", "form_name"), name="unique_form_name_per_owner"),
        ),
        migrations.AddConstraint(
            model_name="formschema",
            constraint=models.UniqueConstraint(
                condition=models.Q(("is_default", True)),
                fields=("owner_id",),
                name="single_default_form_per_owner",
            ),
        ),
        migrations.CreateModel(
            name="Record",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner_id", models.CharField(db_index=True, max_length=64)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("submitted_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "form",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="records",
                        to="dataforms.formschema",
                    ),
                ),
            ],
            options={"ordering": ["-submitted_at", "-id"]},
        ),
        migrations.AddIndex(
            model_name="record",
            index=models.Index(fields=["owner_id", "form"], name="record_owner_form_idx"),
        ),
    ]
