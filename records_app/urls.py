from django.urls import path

from .views import (
    AggregatedMedicationsView,
    AnnotateDocumentView,
    DocumentDetailView,
    DocumentMedicationsView,
    ProcessDocumentView,
    ReviewerDocumentsView,
    ShareDocumentView,
    UploadDocumentView,
    UserDocumentsView,
    UserMedicationsView,
)

urlpatterns = [
    path("upload/", UploadDocumentView.as_view()),
    path("documents/<int:pk>/", DocumentDetailView.as_view()),
    path("documents/<int:pk>/process/", ProcessDocumentView.as_view()),
    path("documents/<int:pk>/medications/", DocumentMedicationsView.as_view()),
    path("documents/<int:pk>/endorse/", AnnotateDocumentView.as_view(annotation="endorse")),
    path("documents/<int:pk>/flag/", AnnotateDocumentView.as_view(annotation="flag")),
    path("documents/<int:pk>/share/", ShareDocumentView.as_view()),
    path("documents/<int:pk>/share/<str:reviewer_id>/", ShareDocumentView.as_view()),
    path("users/<str:owner_id>/documents/", UserDocumentsView.as_view()),
    path("users/<str:owner_id>/medications/", UserMedicationsView.as_view()),
    path("users/<str:owner_id>/medications/aggregated/", AggregatedMedicationsView.as_view()),
    path("reviewers/<str:reviewer_id>/documents/", ReviewerDocumentsView.as_view()),
]
