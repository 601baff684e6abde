from unittest.mock import patch

from django.test import TestCase

from ..exceptions import DocumentNotFound, ExternalServiceFailure, InvalidTransition
from ..lifecycle import (
    PipelineResult,
    complete_processing,
    execute_pipeline,
    fail_processing,
    process_document,
    start_processing,
)
from ..models import Document, DocumentType, MedicationOccurrence
from ..review import endorse, share
from ..services import normalize_medication
from ..stores import medication_store
from .utils import TempMediaMixin, make_document

METFORMIN = {"generic_name": "Metformin", "dosage": "500mg", "frequency": "Twice daily"}
LISINOPRIL = {"generic_name": "Lisinopril", "dosage": "10mg"}


def _result(*medications, document_type=DocumentType.PRESCRIPTION, text="# What This Means For You"):
    return PipelineResult(
        document_type=document_type,
        simplified_text=text,
        medications=list(medications),
    )


# ─── Transitions ─────────────────────────────────────────────────────────────

class StartProcessingTest(TempMediaMixin, TestCase):
    def test_pending_document_starts(self):
        doc = make_document()
        start = start_processing(doc.id)
        self.assertTrue(start.started)
        self.assertEqual(start.document.status, Document.STATUS_PROCESSING)

    def test_clears_previous_error_and_keeps_annotations(self):
        doc = make_document(status=Document.STATUS_ERROR, processing_error="timeout")
        endorse(doc.id, "dr-1", "Dr. One", "Looks right")
        share(doc.id, "dr-2")

        start = start_processing(doc.id)

        self.assertIsNone(start.document.processing_error)
        self.assertEqual(start.document.endorsement["reviewer_id"], "dr-1")
        self.assertEqual(start.document.shared_with, ["dr-2"])

    def test_processed_document_can_start_again(self):
        doc = make_document(status=Document.STATUS_PROCESSED)
        self.assertTrue(start_processing(doc.id).started)

    def test_document_in_flight_is_not_started_twice(self):
        doc = make_document(status=Document.STATUS_PROCESSING)
        start = start_processing(doc.id)
        self.assertFalse(start.started)
        self.assertEqual(start.document.status, Document.STATUS_PROCESSING)

    def test_force_restarts_stuck_document(self):
        doc = make_document(status=Document.STATUS_PROCESSING)
        self.assertTrue(start_processing(doc.id, force=True).started)

    def test_unknown_document(self):
        with self.assertRaises(DocumentNotFound):
            start_processing(99999)


class CompleteAndFailTest(TempMediaMixin, TestCase):
    def setUp(self):
        self.doc = make_document(status=Document.STATUS_PROCESSING)

    def test_complete_writes_results_and_aliases(self):
        doc = complete_processing(self.doc.id, _result(METFORMIN, text="Simple words"))
        self.assertEqual(doc.status, Document.STATUS_PROCESSED)
        self.assertEqual(doc.document_type, DocumentType.PRESCRIPTION)
        self.assertEqual(doc.simplified_text, "Simple words")
        self.assertEqual(doc.processed_content, "Simple words")
        self.assertIsNotNone(doc.processed_at)
        self.assertEqual(medication_store.list_by_document(doc.id).count(), 1)

    def test_complete_tags_occurrences_with_document_and_owner(self):
        complete_processing(self.doc.id, _result(METFORMIN, LISINOPRIL))
        occurrences = list(medication_store.list_by_document(self.doc.id))
        self.assertEqual([o.generic_name for o in occurrences], ["Metformin", "Lisinopril"])
        self.assertEqual([o.position for o in occurrences], [0, 1])
        for occurrence in occurrences:
            self.assertEqual(occurrence.owner_id, self.doc.owner_id)
            self.assertEqual(occurrence.document_name, self.doc.name)

    def test_complete_requires_processing_state(self):
        pending = make_document()
        with self.assertRaises(InvalidTransition):
            complete_processing(pending.id, _result(METFORMIN))
        self.assertFalse(MedicationOccurrence.objects.filter(document=pending).exists())

    def test_fail_stores_message(self):
        doc = fail_processing(self.doc.id, "OpenRouter error 503: unavailable")
        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertEqual(doc.processing_error, "OpenRouter error 503: unavailable")

    def test_fail_requires_processing_state(self):
        pending = make_document()
        with self.assertRaises(InvalidTransition):
            fail_processing(pending.id, "nope")


# ─── Orchestration ───────────────────────────────────────────────────────────

@patch("records_app.services.extract_medications")
@patch("records_app.services.simplify")
@patch("records_app.services.classify")
class ProcessDocumentTest(TempMediaMixin, TestCase):
    def setUp(self):
        self.doc = make_document(text="Metformin 500mg twice daily")

    def test_success(self, mock_classify, mock_simplify, mock_extract):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "# What This Means For You"
        mock_extract.return_value = [METFORMIN]

        doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_PROCESSED)
        self.assertEqual(doc.document_type, DocumentType.PRESCRIPTION)
        self.assertEqual(doc.extracted_text, "Metformin 500mg twice daily")
        self.assertIsNone(doc.processing_error)
        self.assertEqual(medication_store.list_by_document(doc.id).count(), 1)

    def test_processing_committed_before_first_external_call(
        self, mock_classify, mock_simplify, mock_extract
    ):
        seen = []

        def classify(content):
            seen.append(Document.objects.get(pk=self.doc.id).status)
            return DocumentType.LAB_REPORT

        mock_classify.side_effect = classify
        mock_simplify.return_value = "text"
        mock_extract.return_value = []

        process_document(self.doc.id)
        self.assertEqual(seen, [Document.STATUS_PROCESSING])

    def test_simplify_is_conditioned_on_classification(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.INSURANCE
        mock_simplify.return_value = "text"
        mock_extract.return_value = []

        process_document(self.doc.id)

        self.assertEqual(mock_simplify.call_args.args[1], DocumentType.INSURANCE)

    def test_reprocessing_replaces_occurrences(self, mock_classify, mock_simplify, mock_extract):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "text"
        mock_extract.return_value = [METFORMIN, LISINOPRIL]

        process_document(self.doc.id)
        first = medication_store.list_by_document(self.doc.id).count()
        process_document(self.doc.id)

        self.assertEqual(first, 2)
        self.assertEqual(medication_store.list_by_document(self.doc.id).count(), 2)

    def test_external_failure_becomes_error_state(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.side_effect = ExternalServiceFailure("OpenRouter error 429: slow down")

        doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertEqual(doc.processing_error, "OpenRouter error 429: slow down")
        self.assertEqual(doc.document_type, DocumentType.UNCLASSIFIED)
        mock_extract.assert_not_called()

    def test_unexpected_error_becomes_error_state(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.side_effect = AttributeError("'NoneType' object has no attribute 'strip'")

        with self.assertLogs("records_app.lifecycle", level="ERROR"):
            doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertIn("has no attribute 'strip'", doc.processing_error)
        self.assertEqual(Document.objects.get(pk=self.doc.id).status, Document.STATUS_ERROR)
        mock_extract.assert_not_called()

    def test_error_while_storing_results_becomes_error_state(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "text"
        mock_extract.return_value = [METFORMIN]

        with patch.object(medication_store, "replace_for_document", side_effect=ValueError("bad row")):
            with self.assertLogs("records_app.lifecycle", level="ERROR"):
                doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertEqual(doc.processing_error, "bad row")
        self.assertIsNone(doc.simplified_text)
        self.assertEqual(medication_store.list_by_document(doc.id).count(), 0)

    def test_overlong_dosage_is_stored_within_column_length(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "text"
        mock_extract.return_value = [
            normalize_medication({"Name": {"Generic": "Metformin"}, "Dosage": "5" * 300})
        ]

        doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_PROCESSED)
        stored = medication_store.list_by_document(doc.id).get()
        self.assertEqual(len(stored.dosage), MedicationOccurrence._meta.get_field("dosage").max_length)

    def test_failed_reprocessing_keeps_previous_output(
        self, mock_classify, mock_simplify, mock_extract
    ):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "first run"
        mock_extract.return_value = [METFORMIN]
        process_document(self.doc.id)

        mock_extract.side_effect = ExternalServiceFailure("extraction timed out")
        doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertEqual(doc.simplified_text, "first run")
        self.assertEqual(doc.document_type, DocumentType.PRESCRIPTION)
        self.assertEqual(medication_store.list_by_document(doc.id).count(), 1)

    def test_in_flight_document_short_circuits(self, mock_classify, mock_simplify, mock_extract):
        Document.objects.filter(pk=self.doc.id).update(status=Document.STATUS_PROCESSING)

        doc = process_document(self.doc.id)

        self.assertEqual(doc.status, Document.STATUS_PROCESSING)
        mock_classify.assert_not_called()

    def test_execute_requires_started_document(self, mock_classify, mock_simplify, mock_extract):
        with self.assertRaises(InvalidTransition):
            execute_pipeline(self.doc.id)
        mock_classify.assert_not_called()

    def test_unsupported_file_type_becomes_error_state(
        self, mock_classify, mock_simplify, mock_extract
    ):
        Document.objects.filter(pk=self.doc.id).update(media_type="application/zip")
        doc = process_document(self.doc.id)
        self.assertEqual(doc.status, Document.STATUS_ERROR)
        self.assertIn("Unsupported file type", doc.processing_error)
        mock_classify.assert_not_called()

    def test_status_always_in_known_set(self, mock_classify, mock_simplify, mock_extract):
        mock_classify.return_value = DocumentType.PRESCRIPTION
        mock_simplify.return_value = "text"
        mock_extract.return_value = []
        known = {choice for choice, _ in Document.STATUS_CHOICES}

        self.assertIn(Document.objects.get(pk=self.doc.id).status, known)
        doc = process_document(self.doc.id)
        self.assertIn(doc.status, known)
