import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import records_app.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Document",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner_id", models.CharField(db_index=True, max_length=128)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("file", models.FileField(upload_to=records_app.models.document_upload_path)),
                ("media_type", models.CharField(blank=True, default="", max_length=100)),
                ("file_size", models.PositiveBigIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("error", "Error"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "document_type",
                    models.CharField(
                        choices=[
                            ("UNCLASSIFIED", "Unclassified"),
                            ("PRESCRIPTION", "Prescription"),
                            ("LAB_REPORT", "Lab report"),
                            ("INSURANCE", "Insurance"),
                            ("CLINICAL_NOTES", "Clinical notes"),
                            ("MISCELLANEOUS", "Miscellaneous"),
                        ],
                        default="UNCLASSIFIED",
                        max_length=20,
                    ),
                ),
                ("extracted_text", models.TextField(blank=True, default="")),
                ("simplified_text", models.TextField(blank=True, null=True)),
                ("processed_content", models.TextField(blank=True, null=True)),
                ("processing_error", models.TextField(blank=True, null=True)),
                ("endorsement", models.JSONField(blank=True, null=True)),
                ("flag", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="DocumentShare",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reviewer_id", models.CharField(db_index=True, max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="shares",
                        to="records_app.document",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.AddConstraint(
            model_name="documentshare",
            constraint=models.UniqueConstraint(
                fields=("document", "reviewer_id"), name="unique_document_share"
            ),
        ),
        migrations.CreateModel(
            name="MedicationOccurrence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner_id", models.CharField(db_index=True, max_length=128)),
                ("document_name", models.CharField(blank=True, default="", max_length=255)),
                ("position", models.PositiveIntegerField(default=0)),
                ("generic_name", models.CharField(blank=True, max_length=255, null=True)),
                ("brand_name", models.CharField(blank=True, max_length=255, null=True)),
                ("suggested_name", models.CharField(blank=True, max_length=255, null=True)),
                ("dosage", models.CharField(blank=True, max_length=255, null=True)),
                ("frequency", models.CharField(blank=True, max_length=255, null=True)),
                ("purpose", models.TextField(blank=True, null=True)),
                ("special_instructions", models.TextField(blank=True, null=True)),
                ("instructions_from_general_knowledge", models.BooleanField(default=False)),
                ("side_effects", models.TextField(blank=True, null=True)),
                ("side_effects_from_general_knowledge", models.BooleanField(default=False)),
                ("captured_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="medications",
                        to="records_app.document",
                    ),
                ),
            ],
            options={
                "ordering": ["captured_at", "position", "id"],
            },
        ),
    ]
