"""
Medication views over the occurrences extracted from a user's documents.

Two read paths:

* the per-document (flat) view, every occurrence annotated with the document
  it came from;
* the aggregated view, one record per case-insensitive (name, dosage) pair
  carrying every document that mentions it.

Both are recomputed on every read, nothing here is persisted.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .models import MedicationOccurrence
from .stores import document_store, medication_store

logger = logging.getLogger(__name__)

PURPOSE_PREFIX = "Purpose: "
ELLIPSIS = "..."
# Longest purpose-derived label, prefix and ellipsis included.
DISPLAY_NAME_MAX_LENGTH = 55


@dataclass
class MedicationSource:
    document_id: int
    document_name: str
    captured_at: datetime


@dataclass
class MedicationEntry:
    occurrence: MedicationOccurrence
    display_name: str
    source: MedicationSource


@dataclass
class AggregatedMedication:
    key: tuple[str, str]
    occurrence: MedicationOccurrence
    display_name: str = ""
    sources: list[MedicationSource] = field(default_factory=list)


def display_name(occurrence: MedicationOccurrence, position: int) -> str:
    """
    Label shown for an occurrence: generic, brand, suggested name, then the
    truncated purpose, then "Medication Entry #<position>".
    """
    for name in (occurrence.generic_name, occurrence.brand_name, occurrence.suggested_name):
        if name:
            return name

    if occurrence.purpose:
        label = PURPOSE_PREFIX + occurrence.purpose
        if len(label) <= DISPLAY_NAME_MAX_LENGTH:
            return label
        keep = DISPLAY_NAME_MAX_LENGTH - len(PURPOSE_PREFIX) - len(ELLIPSIS)
        return PURPOSE_PREFIX + occurrence.purpose[:keep] + ELLIPSIS

    return f"Medication Entry #{position}"


def dedup_key(occurrence: MedicationOccurrence) -> Optional[tuple[str, str]]:
    """
    Case-insensitive (extracted name, dosage) pair, or None when both are
    missing. The suggested name is deliberately left out: two unnamed
    medications with different purposes must not collapse into one.
    """
    name = (occurrence.raw_name or "").strip().lower()
    dosage = (occurrence.dosage or "").strip().lower()
    if not name and not dosage:
        return None
    return name, dosage


def _source(occurrence: MedicationOccurrence) -> MedicationSource:
    return MedicationSource(
        document_id=occurrence.document_id,
        document_name=occurrence.document_name,
        captured_at=occurrence.captured_at,
    )


def _entries(occurrences: Iterable[MedicationOccurrence]) -> list[MedicationEntry]:
    return [
        MedicationEntry(
            occurrence=occurrence,
            display_name=display_name(occurrence, position),
            source=_source(occurrence),
        )
        for position, occurrence in enumerate(occurrences, start=1)
    ]


def document_medications(document_id) -> list[MedicationEntry]:
    """Occurrences extracted from one document, in extraction order."""
    document_store.get(document_id)
    return _entries(medication_store.list_by_document(document_id))


def user_medications(owner_id) -> list[MedicationEntry]:
    """Every occurrence across the user's documents, no deduplication."""
    return _entries(medication_store.list_by_user(owner_id))


def aggregate(occurrences: Iterable[MedicationOccurrence]) -> list[AggregatedMedication]:
    """
    Fold occurrences into one record per dedup key, first seen first.
    A document contributes at most one source to a record.
    """
    merged: dict[tuple[str, str], AggregatedMedication] = {}
    skipped = 0

    for occurrence in occurrences:
        key = dedup_key(occurrence)
        if key is None:
            skipped += 1
            continue

        record = merged.get(key)
        if record is None:
            merged[key] = AggregatedMedication(
                key=key, occurrence=occurrence, sources=[_source(occurrence)]
            )
        elif not any(s.document_id == occurrence.document_id for s in record.sources):
            record.sources.append(_source(occurrence))

    if skipped:
        logger.debug("Skipped %d occurrence(s) with neither name nor dosage", skipped)

    records = list(merged.values())
    for position, record in enumerate(records, start=1):
        record.display_name = display_name(record.occurrence, position)
    return records


def aggregate_medications(owner_id) -> list[AggregatedMedication]:
    return aggregate(medication_store.list_by_user(owner_id))
