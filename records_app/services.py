import base64
import io
import json
import logging
import re
from dataclasses import dataclass, field

import requests
from django.conf import settings
from PIL import Image

from .exceptions import ExternalServiceFailure
from .models import Document, DocumentType, MedicationOccurrence

logger = logging.getLogger(__name__)

IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
PDF_TYPE = "application/pdf"


@dataclass
class DocumentContent:
    """What gets sent to the understanding service for one document."""

    parts: list[dict] = field(default_factory=list)
    # Raw text, only known when the stored file is itself text.
    text: str = ""


# ─── Content Loading ────────────────────────────────────────────────────────

def preprocess_image(source) -> tuple[bytes, str]:
    """
    Resize image to max 2MP and compress to JPEG at 85% quality.
    Returns (bytes, mime_type).

    ``source`` is a path or an open binary file. Stored documents are read
    through ``FieldFile.open()``, which has no local path on remote storage
    backends, so ``load_content`` passes the open file handle.
    """
    MAX_PIXELS = 2_000_000  # 2 megapixels

    with Image.open(source) as img:
        img = img.convert("RGB")  # strip alpha, ensure JPEG-compatible

        w, h = img.size
        if w * h > MAX_PIXELS:
            scale = (MAX_PIXELS / (w * h)) ** 0.5
            img = img.resize((int(w * scale), int(h * scale)), Image.LANCZOS)

        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=85, optimize=True)
        return buf.getvalue(), "image/jpeg"


def _data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('utf-8')}"


def load_content(document: Document) -> DocumentContent:
    """
    Read the stored file and turn it into chat message parts.
    Images and PDFs go to the model as-is; text files are sent as text.
    """
    media_type = (document.media_type or "").lower()

    try:
        with document.file.open("rb") as fh:
            if media_type in IMAGE_TYPES:
                image_bytes, mime = preprocess_image(fh)
                return DocumentContent(
                    parts=[{"type": "image_url", "image_url": {"url": _data_url(image_bytes, mime)}}]
                )

            if media_type == PDF_TYPE:
                return DocumentContent(
                    parts=[
                        {
                            "type": "file",
                            "file": {
                                "filename": document.name or "document.pdf",
                                "file_data": _data_url(fh.read(), PDF_TYPE),
                            },
                        }
                    ]
                )

            if media_type.startswith("text/"):
                text = fh.read().decode("utf-8", errors="replace").strip()
                if not text:
                    raise ExternalServiceFailure("Failed to extract text from document")
                return DocumentContent(
                    parts=[{"type": "text", "text": f"Document content:\n{text}"}],
                    text=text,
                )
    except (OSError, ValueError) as exc:
        raise ExternalServiceFailure(f"Failed to read document file: {exc}") from exc

    raise ExternalServiceFailure(
        f"Unsupported file type: {media_type or 'unknown'}. "
        "Only PDF, image and plain-text files are supported."
    )


# ─── Model Calls ────────────────────────────────────────────────────────────

def _complete(content: DocumentContent, prompt: str) -> str:
    """
    Send the document parts plus one instruction to OpenRouter.
    Returns the model's text reply. Raises ExternalServiceFailure on failure.
    """
    try:
        response = requests.post(
            settings.OPENROUTER_API_URL,
            headers={
                "Authorization": f"Bearer {settings.OPENROUTER_API_KEY}",
                "Content-Type": "application/json",
            },
            json={
                "model": settings.OPENROUTER_MODEL,
                "messages": [
                    {
                        "role": "user",
                        "content": [*content.parts, {"type": "text", "text": prompt}],
                    }
                ],
            },
            timeout=settings.OPENROUTER_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise ExternalServiceFailure(f"OpenRouter request failed: {exc}") from exc

    if not response.ok:
        raise ExternalServiceFailure(
            f"OpenRouter error {response.status_code}: {response.text[:300]}"
        )

    try:
        reply = response.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise ExternalServiceFailure(
            f"OpenRouter returned an unexpected payload: {response.text[:200]}"
        ) from exc

    if reply is not None and not isinstance(reply, str):
        raise ExternalServiceFailure(
            f"OpenRouter returned an unexpected payload: {response.text[:200]}"
        )

    return reply or ""


CLASSIFY_PROMPT = (
    "Analyse this medical document and classify it into exactly ONE of these "
    "categories:\n"
    "- PRESCRIPTION: medication orders, prescriptions, or pharmacy instructions\n"
    "- LAB_REPORT: laboratory test results, diagnostics, or medical measurements\n"
    "- INSURANCE: insurance cards, claims, coverage documents, or EOBs\n"
    "- CLINICAL_NOTES: doctor's notes, visit or discharge summaries\n"
    "- MISCELLANEOUS: any medical document that fits none of the above\n"
    "Return ONLY the category name without any additional text or explanation."
)


def classify(content: DocumentContent) -> DocumentType:
    reply = _complete(content, CLASSIFY_PROMPT)
    document_type = DocumentType.coerce(reply)
    logger.info("Document classified as %s", document_type.value)
    return document_type


SIMPLIFY_PROMPT = (
    "This is a medical document classified as: {document_type}. "
    "Simplify it for a patient with no medical background. Transform complex "
    "medical information into clear, actionable insights anyone can understand. "
    "Format your response as markdown with these sections: "
    "# What This Means For You, # Key Actions, # Important Information, "
    "# Health Terms Simplified. Write at a 6th-grade reading level with short "
    "sentences and simple words. Focus on practical information, not technical details."
)


def simplify(content: DocumentContent, document_type: DocumentType) -> str:
    reply = _complete(content, SIMPLIFY_PROMPT.format(document_type=document_type.value))
    text = reply.strip()
    if not text:
        raise ExternalServiceFailure("OpenRouter returned an empty simplification")
    return text


EXTRACT_PROMPT = (
    "Extract ALL medications mentioned in this medical document. For each "
    "medication return a JSON object with:\n"
    "1. \"Name\": an object with \"Generic\" and \"Brand\" (null if not found).\n"
    "2. \"SuggestedName\": ONLY if both Generic and Brand are null, a short "
    "descriptive fallback name such as \"Pain Reliever\"; otherwise null.\n"
    "3. \"Dosage\", \"Frequency\", \"Purpose\" (patient-friendly), null if not found.\n"
    "4. \"Special Instructions\": taken from the document. If none are found but "
    "the medication is identified, give standard instructions from general "
    "knowledge and set \"isGeneralKnowledgeInstructions\": true.\n"
    "5. \"Important Side Effects\": taken from the document. If none are found but "
    "the medication is identified, list 1-3 well-known ones from general "
    "knowledge and set \"isGeneralKnowledgeSideEffects\": true.\n"
    "Return ONLY a JSON array of these objects, [] if there are no medications. "
    "Do not include any explanation or markdown."
)

_FENCE_RE = re.compile(r"```(?:json)?")


def _first_json_array(text: str):
    """Decode the first complete JSON array in ``text``, ignoring what follows it."""
    decoder = json.JSONDecoder()
    start = text.find("[")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return value
        start = text.find("[", start + 1)
    return None


def extract_medications(content: DocumentContent) -> list[dict]:
    """
    Ask for the structured medication list.
    A reply that is not a JSON array yields [], the call itself failing raises.
    """
    reply = _complete(content, EXTRACT_PROMPT)

    # Strip any accidental markdown fences the model might add
    cleaned = _FENCE_RE.sub("", reply).strip()
    items = _first_json_array(cleaned)
    if items is None:
        logger.warning("No JSON array found in medication reply: %s", cleaned[:200])
        return []

    medications = []
    for item in items:
        medication = normalize_medication(item)
        if medication is None:
            logger.warning("Dropping malformed medication item: %r", item)
            continue
        medications.append(medication)
    return medications


# ─── Payload Normalisation ──────────────────────────────────────────────────

def _text(value):
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    if not value or value.lower() in ("null", "none", "n/a"):
        return None
    return value


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _clipped(field_name, value):
    # Model replies have no length limit; CharFields do.
    if value is None:
        return None
    max_length = MedicationOccurrence._meta.get_field(field_name).max_length
    return value[:max_length].rstrip()


def normalize_medication(item) -> dict | None:
    """Map one wire-format medication object onto MedicationOccurrence fields."""
    if not isinstance(item, dict):
        return None

    name = item.get("Name", item.get("name"))
    if isinstance(name, dict):
        generic, brand = _text(name.get("Generic")), _text(name.get("Brand"))
    else:
        generic, brand = _text(name), None

    return {
        "generic_name": _clipped("generic_name", generic),
        "brand_name": _clipped("brand_name", brand),
        "suggested_name": _clipped("suggested_name", _text(item.get("SuggestedName"))),
        "dosage": _clipped("dosage", _text(item.get("Dosage", item.get("dosage")))),
        "frequency": _clipped("frequency", _text(item.get("Frequency", item.get("frequency")))),
        "purpose": _text(item.get("Purpose", item.get("purpose"))),
        "special_instructions": _text(
            item.get("Special Instructions", item.get("instructions"))
        ),
        "instructions_from_general_knowledge": _flag(
            item.get("isGeneralKnowledgeInstructions")
        ),
        "side_effects": _text(item.get("Important Side Effects", item.get("warnings"))),
        "side_effects_from_general_knowledge": _flag(
            item.get("isGeneralKnowledgeSideEffects")
        ),
    }
