"""
Document processing lifecycle.

    pending -> processing -> processed | error
    processed | error -> processing          (re-processing, full re-run)

Every transition is one conditional UPDATE on the document row. Moving into
``processing`` is committed before the understanding service is called, so a
second request for the same document sees work in flight and backs off
instead of paying for a duplicate pipeline run.
"""
import logging
from dataclasses import dataclass, field

from django.db import transaction
from django.utils import timezone

from . import services
from .exceptions import DocumentNotFound, ExternalServiceFailure, InvalidTransition
from .models import Document, DocumentType
from .stores import document_store, medication_store

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    document: Document
    # False when another run already holds the document in ``processing``.
    started: bool


@dataclass
class PipelineResult:
    document_type: DocumentType
    simplified_text: str
    medications: list[dict] = field(default_factory=list)
    extracted_text: str = ""


def start_processing(document_id, force: bool = False) -> StartResult:
    """
    Move the document into ``processing`` and clear any previous error.

    Unless ``force`` is set, a document that is already processing is left
    alone and reported with ``started=False``. Review annotations and the
    sharing list are never touched.
    """
    exclude = None if force else [Document.STATUS_PROCESSING]
    document = document_store.transition(
        document_id,
        Document.STATUS_PROCESSING,
        exclude_statuses=exclude,
        processing_error=None,
    )
    if document is None:
        logger.info("Document %s is already being processed, not starting again", document_id)
        return StartResult(document=document_store.get(document_id), started=False)

    logger.info("Document %s moved to processing%s", document_id, " (forced)" if force else "")
    return StartResult(document=document, started=True)


def run_pipeline(document: Document) -> PipelineResult:
    """
    Call the understanding service: classify, then simplify (conditioned on
    the classification), then extract medications. Any failing step raises
    ExternalServiceFailure and nothing is committed.
    """
    content = services.load_content(document)
    document_type = services.classify(content)
    simplified_text = services.simplify(content, document_type)
    medications = services.extract_medications(content)
    logger.info(
        "Pipeline for document %s produced %s with %d medication(s)",
        document.id,
        document_type.value,
        len(medications),
    )
    return PipelineResult(
        document_type=document_type,
        simplified_text=simplified_text,
        medications=medications,
        extracted_text=content.text,
    )


def complete_processing(document_id, result: PipelineResult) -> Document:
    """Store a successful run and replace the document's medication batch."""
    with transaction.atomic():
        document = document_store.transition(
            document_id,
            Document.STATUS_PROCESSED,
            from_statuses=[Document.STATUS_PROCESSING],
            document_type=result.document_type,
            extracted_text=result.extracted_text,
            simplified_text=result.simplified_text,
            processed_content=result.simplified_text,
            processing_error=None,
            processed_at=timezone.now(),
        )
        if document is None:
            raise InvalidTransition(
                f"Document {document_id} is not processing and cannot be completed"
            )
        medication_store.replace_for_document(document, result.medications)

    logger.info("Document %s processed", document_id)
    return document


def fail_processing(document_id, error_message: str) -> Document:
    """
    Record a failed run. Output of an earlier successful run (simplified
    text, classification, medications) is kept.
    """
    document = document_store.transition(
        document_id,
        Document.STATUS_ERROR,
        from_statuses=[Document.STATUS_PROCESSING],
        processing_error=error_message,
    )
    if document is None:
        raise InvalidTransition(
            f"Document {document_id} is not processing and cannot be failed"
        )

    logger.warning("Document %s failed processing: %s", document_id, error_message)
    return document


def execute_pipeline(document_id) -> Document:
    """
    Run the pipeline for a document already in ``processing`` and apply the
    outcome. Any failure ends up in the ``error`` state, not raised; only
    DocumentNotFound and InvalidTransition reach the caller.
    """
    document = document_store.get(document_id)
    if document.status != Document.STATUS_PROCESSING:
        raise InvalidTransition(
            f"Document {document_id} is {document.status}, start processing first"
        )

    try:
        result = run_pipeline(document)
        return complete_processing(document_id, result)
    except (DocumentNotFound, InvalidTransition):
        raise
    except ExternalServiceFailure as exc:
        return fail_processing(document_id, str(exc))
    except Exception as exc:
        logger.exception("Unexpected error processing document %s", document_id)
        return fail_processing(document_id, str(exc))


def process_document(document_id, force: bool = False) -> Document:
    """Start and run processing in the caller. Returns the resulting record."""
    start = start_processing(document_id, force=force)
    if not start.started:
        return start.document
    return execute_pipeline(document_id)
