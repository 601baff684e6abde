import logging

from celery import shared_task

from .exceptions import DocumentNotFound, InvalidTransition
from .lifecycle import execute_pipeline

logger = logging.getLogger(__name__)


@shared_task
def run_document_pipeline(doc_id: int):
    """
    Background task: run the understanding pipeline for a document the
    request already moved into ``processing``. Not retried; the user
    re-requests processing instead.
    """
    try:
        doc = execute_pipeline(doc_id)
    except DocumentNotFound:
        return None  # Deleted while queued
    except InvalidTransition as exc:
        logger.info("Skipping pipeline run: %s", exc)
        return None

    return doc.status
