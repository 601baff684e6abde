import logging

from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)


class DocumentType(models.TextChoices):
    """Classification of a medical document.

    UNCLASSIFIED is only ever the default of a document that has not been
    processed yet; the understanding service can only produce the other five.
    """

    UNCLASSIFIED = "UNCLASSIFIED", "Unclassified"
    PRESCRIPTION = "PRESCRIPTION", "Prescription"
    LAB_REPORT = "LAB_REPORT", "Lab report"
    INSURANCE = "INSURANCE", "Insurance"
    CLINICAL_NOTES = "CLINICAL_NOTES", "Clinical notes"
    MISCELLANEOUS = "MISCELLANEOUS", "Miscellaneous"

    @classmethod
    def classifiable(cls):
        return [t for t in cls if t is not cls.UNCLASSIFIED]

    @classmethod
    def coerce(cls, value) -> "DocumentType":
        """Map a raw classifier answer onto the enumeration, MISCELLANEOUS if unknown."""
        label = str(value or "").strip().upper()
        for doc_type in cls.classifiable():
            if doc_type.value == label:
                return doc_type
        logger.warning("Unknown document classification %r, using MISCELLANEOUS", value)
        return cls.MISCELLANEOUS


def document_upload_path(instance, filename):
    return f"documents/{instance.owner_id}/{filename}"


class Document(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_PROCESSED = "processed"
    STATUS_ERROR = "error"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_PROCESSED, "Processed"),
        (STATUS_ERROR, "Error"),
    ]

    owner_id = models.CharField(max_length=128, db_index=True)
    name = models.CharField(max_length=255, blank=True, default="")
    file = models.FileField(upload_to=document_upload_path)
    media_type = models.CharField(max_length=100, blank=True, default="")
    file_size = models.PositiveBigIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
    )
    document_type = models.CharField(
        max_length=20,
        choices=DocumentType.choices,
        default=DocumentType.UNCLASSIFIED,
    )
    extracted_text = models.TextField(blank=True, default="")
    simplified_text = models.TextField(null=True, blank=True)
    # Older clients read the simplified text under this name.
    processed_content = models.TextField(null=True, blank=True)
    processing_error = models.TextField(null=True, blank=True)
    # {"reviewer_id", "display_name", "note", "timestamp"}
    endorsement = models.JSONField(null=True, blank=True)
    flag = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Document {self.id} [{self.status}]"

    @property
    def shared_with(self) -> list[str]:
        return [share.reviewer_id for share in self.shares.all()]


class DocumentShare(models.Model):
    document = models.ForeignKey(
        Document, on_delete=models.CASCADE, related_name="shares"
    )
    reviewer_id = models.CharField(max_length=128, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["document", "reviewer_id"], name="unique_document_share"
            ),
        ]

    def __str__(self):
        return f"Document {self.document_id} -> {self.reviewer_id}"


class MedicationOccurrence(models.Model):
    """One medication extracted from one document. Written once, never updated."""

    owner_id = models.CharField(max_length=128, db_index=True)
    document = models.ForeignKey(
        Document, on_delete=models.CASCADE, related_name="medications"
    )
    document_name = models.CharField(max_length=255, blank=True, default="")
    position = models.PositiveIntegerField(default=0)
    generic_name = models.CharField(max_length=255, null=True, blank=True)
    brand_name = models.CharField(max_length=255, null=True, blank=True)
    suggested_name = models.CharField(max_length=255, null=True, blank=True)
    dosage = models.CharField(max_length=255, null=True, blank=True)
    frequency = models.CharField(max_length=255, null=True, blank=True)
    purpose = models.TextField(null=True, blank=True)
    special_instructions = models.TextField(null=True, blank=True)
    instructions_from_general_knowledge = models.BooleanField(default=False)
    side_effects = models.TextField(null=True, blank=True)
    side_effects_from_general_knowledge = models.BooleanField(default=False)
    captured_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["captured_at", "position", "id"]

    def __str__(self):
        return f"{self.raw_name or 'Unnamed'} (document {self.document_id})"

    @property
    def raw_name(self):
        """Name as extracted from the document; generic wins over brand."""
        return self.generic_name or self.brand_name
