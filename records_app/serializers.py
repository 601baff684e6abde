from rest_framework import serializers

from .models import Document


class DocumentSerializer(serializers.ModelSerializer):
    shared_with = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Document
        fields = [
            "id",
            "owner_id",
            "name",
            "file",
            "media_type",
            "file_size",
            "status",
            "document_type",
            "extracted_text",
            "simplified_text",
            "processed_content",
            "processing_error",
            "endorsement",
            "flag",
            "shared_with",
            "created_at",
            "updated_at",
            "processed_at",
        ]
        read_only_fields = [
            "media_type",
            "file_size",
            "status",
            "document_type",
            "extracted_text",
            "simplified_text",
            "processed_content",
            "processing_error",
            "endorsement",
            "flag",
            "created_at",
            "updated_at",
            "processed_at",
        ]
        extra_kwargs = {"name": {"required": False}}


class MedicationSourceSerializer(serializers.Serializer):
    document_id = serializers.IntegerField()
    document_name = serializers.CharField()
    captured_at = serializers.DateTimeField()


class MedicationFieldsSerializer(serializers.Serializer):
    """Fields shared by both medication views, read off ``occurrence``."""

    id = serializers.IntegerField(source="occurrence.id")
    display_name = serializers.CharField()
    generic_name = serializers.CharField(source="occurrence.generic_name", allow_null=True)
    brand_name = serializers.CharField(source="occurrence.brand_name", allow_null=True)
    suggested_name = serializers.CharField(source="occurrence.suggested_name", allow_null=True)
    dosage = serializers.CharField(source="occurrence.dosage", allow_null=True)
    frequency = serializers.CharField(source="occurrence.frequency", allow_null=True)
    purpose = serializers.CharField(source="occurrence.purpose", allow_null=True)
    special_instructions = serializers.CharField(
        source="occurrence.special_instructions", allow_null=True
    )
    instructions_from_general_knowledge = serializers.BooleanField(
        source="occurrence.instructions_from_general_knowledge"
    )
    side_effects = serializers.CharField(source="occurrence.side_effects", allow_null=True)
    side_effects_from_general_knowledge = serializers.BooleanField(
        source="occurrence.side_effects_from_general_knowledge"
    )


class MedicationEntrySerializer(MedicationFieldsSerializer):
    source_document_id = serializers.IntegerField(source="source.document_id")
    source_document_name = serializers.CharField(source="source.document_name")
    captured_at = serializers.DateTimeField(source="source.captured_at")


class AggregatedMedicationSerializer(MedicationFieldsSerializer):
    sources = MedicationSourceSerializer(many=True)


class AnnotationSerializer(serializers.Serializer):
    reviewer_id = serializers.CharField(max_length=128)
    display_name = serializers.CharField(max_length=255)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class ShareSerializer(serializers.Serializer):
    reviewer_id = serializers.CharField(max_length=128)
