"""
Persistence seams for the records core.

The lifecycle, aggregation and review modules only talk to the database
through these two stores, so every write that matters is a single UPDATE or a
single transaction.
"""
import logging
from typing import Iterable, Optional

from django.db import transaction
from django.utils import timezone

from .exceptions import DocumentNotFound
from .models import Document, DocumentShare, MedicationOccurrence

logger = logging.getLogger(__name__)

OCCURRENCE_FIELDS = (
    "generic_name",
    "brand_name",
    "suggested_name",
    "dosage",
    "frequency",
    "purpose",
    "special_instructions",
    "instructions_from_general_knowledge",
    "side_effects",
    "side_effects_from_general_knowledge",
)

PROVENANCE_FIELDS = (
    "instructions_from_general_knowledge",
    "side_effects_from_general_knowledge",
)


def _occurrence_fields(item: dict) -> dict:
    fields = {field: item.get(field) for field in OCCURRENCE_FIELDS}
    for field in PROVENANCE_FIELDS:
        fields[field] = bool(fields[field])
    return fields


class DocumentStore:
    def get(self, document_id) -> Document:
        try:
            return Document.objects.get(pk=document_id)
        except (Document.DoesNotExist, ValueError, TypeError):
            raise DocumentNotFound(document_id) from None

    def exists(self, document_id) -> bool:
        try:
            return Document.objects.filter(pk=document_id).exists()
        except (ValueError, TypeError):
            return False

    def create(self, **data) -> Document:
        document = Document.objects.create(**data)
        logger.info("Created document %s for owner %s", document.id, document.owner_id)
        return document

    def update_fields(self, document_id, **fields) -> Document:
        """Write ``fields`` in one UPDATE and return the fresh record."""
        fields.setdefault("updated_at", timezone.now())
        rows = Document.objects.filter(pk=document_id).update(**fields)
        if not rows:
            raise DocumentNotFound(document_id)
        return self.get(document_id)

    def transition(
        self,
        document_id,
        status: str,
        *,
        from_statuses: Optional[Iterable[str]] = None,
        exclude_statuses: Optional[Iterable[str]] = None,
        **fields,
    ) -> Optional[Document]:
        """
        Compare-and-swap on the status column.

        The UPDATE only matches rows whose current status satisfies the
        guard. Returns the updated record, or None when the guard did not
        hold. Raises DocumentNotFound if the id is unknown.
        """
        queryset = Document.objects.filter(pk=document_id)
        if from_statuses is not None:
            queryset = queryset.filter(status__in=list(from_statuses))
        if exclude_statuses is not None:
            queryset = queryset.exclude(status__in=list(exclude_statuses))

        fields.setdefault("updated_at", timezone.now())
        rows = queryset.update(status=status, **fields)
        if rows:
            return self.get(document_id)
        if not self.exists(document_id):
            raise DocumentNotFound(document_id)
        return None

    def delete(self, document_id) -> None:
        """Delete the record, its medication occurrences, shares and stored file."""
        document = self.get(document_id)
        storage = document.file.storage
        file_name = document.file.name

        with transaction.atomic():
            removed = medication_store.delete_by_document(document.id)
            document.delete()
        logger.info(
            "Deleted document %s and %d medication occurrence(s)", document_id, removed
        )

        if file_name:
            try:
                storage.delete(file_name)
            except OSError:
                logger.exception(
                    "Failed to delete stored file %s for document %s", file_name, document_id
                )

    def for_owner(self, owner_id):
        return Document.objects.filter(owner_id=owner_id)

    def shared_with(self, reviewer_id):
        return Document.objects.filter(shares__reviewer_id=reviewer_id).distinct()

    def endorsed_by(self, reviewer_id):
        return Document.objects.filter(endorsement__reviewer_id=reviewer_id)

    def flagged_by(self, reviewer_id):
        return Document.objects.filter(flag__reviewer_id=reviewer_id)

    def add_share(self, document_id, reviewer_id) -> bool:
        _, created = DocumentShare.objects.get_or_create(
            document_id=document_id, reviewer_id=reviewer_id
        )
        return created

    def remove_share(self, document_id, reviewer_id) -> bool:
        deleted, _ = DocumentShare.objects.filter(
            document_id=document_id, reviewer_id=reviewer_id
        ).delete()
        return bool(deleted)


class MedicationStore:
    def list_by_document(self, document_id):
        return MedicationOccurrence.objects.filter(document_id=document_id).order_by(
            "position", "id"
        )

    def list_by_user(self, owner_id):
        # Insertion order: batches in capture order, items in extraction order.
        return MedicationOccurrence.objects.filter(owner_id=owner_id).order_by(
            "captured_at", "document_id", "position", "id"
        )

    def replace_for_document(self, document: Document, occurrences: list[dict]):
        """Swap the document's whole batch of occurrences for ``occurrences``."""
        captured_at = timezone.now()
        rows = [
            MedicationOccurrence(
                owner_id=document.owner_id,
                document=document,
                document_name=document.name,
                position=position,
                captured_at=captured_at,
                **_occurrence_fields(item),
            )
            for position, item in enumerate(occurrences)
        ]
        with transaction.atomic():
            self.delete_by_document(document.id)
            created = MedicationOccurrence.objects.bulk_create(rows)
        logger.info(
            "Stored %d medication occurrence(s) for document %s", len(created), document.id
        )
        return created

    def delete_by_document(self, document_id) -> int:
        deleted, _ = MedicationOccurrence.objects.filter(document_id=document_id).delete()
        return deleted


document_store = DocumentStore()
medication_store = MedicationStore()
