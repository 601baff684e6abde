import io
import json
import shutil
import tempfile
from unittest.mock import MagicMock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import override_settings

from ..models import Document, MedicationOccurrence


def _fake_image():
    """Return a minimal valid JPEG binary (1x1 white pixel)."""
    from PIL import Image
    buf = io.BytesIO()
    Image.new("RGB", (1, 1), color=(255, 255, 255)).save(buf, format="JPEG")
    buf.seek(0)
    return buf.read()


def _uploaded_image(name="test.jpg"):
    return SimpleUploadedFile(name, _fake_image(), content_type="image/jpeg")


def _uploaded_text(text="Metformin 500mg twice daily", name="note.txt"):
    return SimpleUploadedFile(name, text.encode("utf-8"), content_type="text/plain")


def make_document(owner_id="patient-1", name="note.txt", text="Metformin 500mg twice daily", **fields):
    fields.setdefault("media_type", "text/plain")
    return Document.objects.create(
        owner_id=owner_id,
        name=name,
        file=_uploaded_text(text, name=name),
        **fields,
    )


def make_occurrence(document, position=0, **fields):
    return MedicationOccurrence.objects.create(
        owner_id=document.owner_id,
        document=document,
        document_name=document.name,
        position=position,
        **fields,
    )


def chat_response(content, status_code=200):
    """A requests.Response stand-in for an OpenRouter chat completion."""
    mock_resp = MagicMock()
    mock_resp.ok = status_code == 200
    mock_resp.status_code = status_code
    mock_resp.text = content
    mock_resp.json.return_value = {"choices": [{"message": {"content": content}}]}
    return mock_resp


def medication_payload(*items):
    return json.dumps(list(items))


class TempMediaMixin:
    """Point MEDIA_ROOT at a throwaway directory for the test class."""

    @classmethod
    def setUpClass(cls):
        cls._media_root = tempfile.mkdtemp()
        cls._media_override = override_settings(MEDIA_ROOT=cls._media_root)
        cls._media_override.enable()
        super().setUpClass()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        cls._media_override.disable()
        shutil.rmtree(cls._media_root, ignore_errors=True)
