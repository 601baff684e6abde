from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.generics import GenericAPIView, ListAPIView, RetrieveDestroyAPIView
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from . import aggregation, review
from .exceptions import DocumentNotFound, InvalidTransition
from .lifecycle import start_processing
from .models import Document
from .serializers import (
    AggregatedMedicationSerializer,
    AnnotationSerializer,
    DocumentSerializer,
    MedicationEntrySerializer,
    ShareSerializer,
)
from .stores import document_store
from .tasks import run_document_pipeline


def records_exception_handler(exc, context):
    """Map core errors onto HTTP: unknown document 404, bad transition 409."""
    if isinstance(exc, DocumentNotFound):
        exc = NotFound(str(exc))
    elif isinstance(exc, InvalidTransition):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    return exception_handler(exc, context)


def _request_processing(document_id, force=False):
    """
    Commit the move to ``processing`` here, in the request, then queue the
    pipeline. A document already in flight is returned as-is with 200.
    """
    start = start_processing(document_id, force=force)
    if start.started:
        run_document_pipeline.delay(document_id)
        return start.document, status.HTTP_202_ACCEPTED
    return start.document, status.HTTP_200_OK


class UploadDocumentView(GenericAPIView):
    """
    POST /api/upload/
    Accepts a medical document (image, PDF or text), saves it and requests
    processing. Returns 202 Accepted; poll /api/documents/<id>/ for results.
    """
    serializer_class = DocumentSerializer
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        upload = serializer.validated_data["file"]
        doc = serializer.save(
            name=serializer.validated_data.get("name") or upload.name,
            media_type=getattr(upload, "content_type", "") or "",
            file_size=upload.size or 0,
        )

        doc, code = _request_processing(doc.id)
        return Response(self.get_serializer(doc).data, status=code)


class DocumentDetailView(RetrieveDestroyAPIView):
    """
    GET    /api/documents/<id>/   current status and results
    DELETE /api/documents/<id>/   removes the record, medications and file
    """
    queryset = Document.objects.all()
    serializer_class = DocumentSerializer

    def perform_destroy(self, instance):
        document_store.delete(instance.id)


class ProcessDocumentView(APIView):
    """
    POST /api/documents/<id>/process/[?force=true]
    Re-runs the whole pipeline. ``force`` restarts a document stuck in processing.
    """

    def post(self, request, pk):
        force = request.query_params.get("force", "").lower() in ("1", "true", "yes")
        doc, code = _request_processing(pk, force=force)
        return Response(DocumentSerializer(doc).data, status=code)


class UserDocumentsView(ListAPIView):
    """GET /api/users/<owner_id>/documents/"""
    serializer_class = DocumentSerializer

    def get_queryset(self):
        return document_store.for_owner(self.kwargs["owner_id"])


class DocumentMedicationsView(APIView):
    """GET /api/documents/<id>/medications/"""

    def get(self, request, pk):
        entries = aggregation.document_medications(pk)
        return Response({"medications": MedicationEntrySerializer(entries, many=True).data})


class UserMedicationsView(APIView):
    """GET /api/users/<owner_id>/medications/"""

    def get(self, request, owner_id):
        entries = aggregation.user_medications(owner_id)
        return Response({"medications": MedicationEntrySerializer(entries, many=True).data})


class AggregatedMedicationsView(APIView):
    """GET /api/users/<owner_id>/medications/aggregated/"""

    def get(self, request, owner_id):
        records = aggregation.aggregate_medications(owner_id)
        return Response(
            {"medications": AggregatedMedicationSerializer(records, many=True).data}
        )


class AnnotateDocumentView(APIView):
    """
    POST /api/documents/<id>/endorse/
    POST /api/documents/<id>/flag/
    """
    annotation = None

    def post(self, request, pk):
        serializer = AnnotationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        annotate = review.endorse if self.annotation == "endorse" else review.flag
        doc = annotate(pk, **serializer.validated_data)
        return Response(DocumentSerializer(doc).data)


class ShareDocumentView(APIView):
    """
    POST   /api/documents/<id>/share/                 {"reviewer_id": ...}
    DELETE /api/documents/<id>/share/<reviewer_id>/
    """

    def _reviewer_id(self, request, reviewer_id):
        if reviewer_id is not None:
            return reviewer_id
        serializer = ShareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data["reviewer_id"]

    def post(self, request, pk, reviewer_id=None):
        doc = review.share(pk, self._reviewer_id(request, reviewer_id))
        return Response(DocumentSerializer(doc).data)

    def delete(self, request, pk, reviewer_id=None):
        doc = review.unshare(pk, self._reviewer_id(request, reviewer_id))
        return Response(DocumentSerializer(doc).data)


class ReviewerDocumentsView(ListAPIView):
    """GET /api/reviewers/<reviewer_id>/documents/?filter=shared|endorsed|flagged"""
    serializer_class = DocumentSerializer

    LOOKUPS = {
        "shared": review.shared_with,
        "endorsed": review.endorsed_by,
        "flagged": review.flagged_by,
    }

    def get_queryset(self):
        kind = self.request.query_params.get("filter", "shared")
        if kind not in self.LOOKUPS:
            raise ValidationError({"filter": f"Expected one of {sorted(self.LOOKUPS)}"})
        return self.LOOKUPS[kind](self.kwargs["reviewer_id"])
