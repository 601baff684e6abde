"""
Reviewer annotations and sharing.

Endorsement and flag are two independent single slots (last write wins,
no history) and a document may carry both. None of these operations touch
the processing status.
"""
import logging

from django.utils import timezone

from .exceptions import DocumentNotFound, InvalidTransition
from .models import Document
from .stores import document_store

logger = logging.getLogger(__name__)


def _annotation(reviewer_id: str, display_name: str, note: str) -> dict:
    return {
        "reviewer_id": reviewer_id,
        "display_name": display_name,
        "note": note or "",
        "timestamp": timezone.now().isoformat(),
    }


def _annotate(document_id, slot: str, reviewer_id, display_name, note) -> Document:
    try:
        document = document_store.update_fields(
            document_id, **{slot: _annotation(reviewer_id, display_name, note)}
        )
    except DocumentNotFound as exc:
        raise InvalidTransition(f"Cannot {slot} document {document_id}: not found") from exc

    logger.info("Document %s: %s set by reviewer %s", document_id, slot, reviewer_id)
    return document


def endorse(document_id, reviewer_id: str, display_name: str, note: str = "") -> Document:
    return _annotate(document_id, "endorsement", reviewer_id, display_name, note)


def flag(document_id, reviewer_id: str, display_name: str, note: str = "") -> Document:
    return _annotate(document_id, "flag", reviewer_id, display_name, note)


def share(document_id, reviewer_id: str) -> Document:
    """Add the reviewer to the sharing set. Sharing twice is a no-op."""
    if not document_store.exists(document_id):
        raise InvalidTransition(f"Cannot share document {document_id}: not found")

    if document_store.add_share(document_id, reviewer_id):
        logger.info("Document %s shared with reviewer %s", document_id, reviewer_id)
    return document_store.get(document_id)


def unshare(document_id, reviewer_id: str) -> Document:
    """Remove the reviewer from the sharing set, absent reviewers included."""
    if not document_store.exists(document_id):
        raise InvalidTransition(f"Cannot unshare document {document_id}: not found")

    if document_store.remove_share(document_id, reviewer_id):
        logger.info("Document %s no longer shared with reviewer %s", document_id, reviewer_id)
    return document_store.get(document_id)


def shared_with(reviewer_id: str):
    return document_store.shared_with(reviewer_id)


def endorsed_by(reviewer_id: str):
    return document_store.endorsed_by(reviewer_id)


def flagged_by(reviewer_id: str):
    return document_store.flagged_by(reviewer_id)
