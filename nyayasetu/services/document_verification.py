"""
NyayaSetu - Document Verification Service
==========================================

Checks that an uploaded file is the document it claims to be before it is
accepted into a case file.

Pipeline:
1. Text extraction - native PDF text (pypdf) or image OCR
   (Google Cloud Vision, with local Tesseract as fallback)
2. Keyword scoring - required phrases weigh 3, supportive phrases weigh 1
3. Classification - highest confidence type wins; a type scores zero
   unless at least one of its required phrases is present
4. Decision - accept, reject, or accept-unverified when a mismatch is
   below the detected type's confidence threshold

Supports: PDF, JPEG, PNG. Other file types are accepted unverified.
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import httpx
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from nyayasetu.core.config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# DOCUMENT TYPES
# =============================================================================

class DocumentType(str, Enum):
    """Document categories a case file can hold. Values are the wire keys."""
    FIR = "fir"
    CASTE_CERTIFICATE = "casteCertificate"
    AADHAAR = "aadhaar"
    MEDICAL = "medical"
    BANK_PASSBOOK = "bankPassbook"
    MARRIAGE_CERTIFICATE = "marriageCertificate"
    ADDRESS_PROOF = "addressProof"
    UNKNOWN = "unknown"


PDF_MIME_TYPES = {"application/pdf"}
IMAGE_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png"}

REQUIRED_WEIGHT = 3
SUPPORTIVE_WEIGHT = 1
DEFAULT_MIN_CONFIDENCE = 0.15


@dataclass(frozen=True)
class KeywordProfile:
    """Phrases that identify one document type."""
    required: tuple[str, ...]
    supportive: tuple[str, ...]
    min_confidence: float = DEFAULT_MIN_CONFIDENCE

    @property
    def max_score(self) -> int:
        return len(self.required) * REQUIRED_WEIGHT + len(self.supportive) * SUPPORTIVE_WEIGHT


# =============================================================================
# KEYWORD TABLE
# =============================================================================
# Any ONE required phrase is enough for a type to be considered.
# Table order breaks ties: the first type to reach the top score wins.

DOCUMENT_KEYWORDS: dict[DocumentType, KeywordProfile] = {
    DocumentType.FIR: KeywordProfile(
        # Official FIR Form IF1
        required=(
            "first information report",
            "form if1",
            "integrated form",
            "section 154 cr.p.c",
            "f.i.r. no",
            "f.i.r no",
            "fir no",
            "occurrence of offence",
            "complainant / information",
            "complainant/information",
            "general diary reference",
            "officer-in-charge, police station",
            "signature of the officer-in-charge",
            "informant free of cost",
            "investigation transferred to p.s",
            "action taken",
            "commission of offence",
            "date & time of despatch to the court",
        ),
        supportive=(
            "p.s.", "police station", "dist.", "district",
            "act", "sections", "ipc", "bns", "crpc",
            "accused", "complainant", "informant",
            "type of information", "written", "oral",
            "place of occurrence", "beat no",
            "father's name", "husband's name",
            "properties stolen", "inquest report",
            "f.i.r. contents", "rank", "thumb-impression",
        ),
        # FIR forms carry many unique phrases
        min_confidence=0.10,
    ),
    DocumentType.CASTE_CERTIFICATE: KeywordProfile(
        # Maharashtra caste certificate (Form 8 and SEBC format)
        required=(
            "caste certificate",
            "caste certificate (part-a)",
            "परिशिष्ट – अ",
            "परिशिष्ट-अ",
            "जाति प्रमाण पत्र",
            "form - 8",
            "form 8",
            "socially and educationally backward class",
            "sebc",
            "non-creamy layer certificate",
            "non-creamy layer certificate (part-b)",
            "creamy-layer",
            "sebc act",
            "this is to certify that",
            "belongs to the",
            "state of maharashtra",
            "sub divisional officer",
            "उप विभागीय अधिकारी",
            "other backward class",
            "scheduled caste",
            "scheduled tribe",
            "de-notified tribe",
            "vimukt jati",
            "nomadic tribe",
            "special backward category",
            "government resolution",
            "social justice & special assistance",
            "cbc-10/2013",
            "government of maharashtra gazette",
            "outward no",
            "reg./case no",
            "certificate sr. no",
            "mahaonline.gov.in",
            "www.mahaonline.gov.in/verify",
            "digitally signed",
            "information technology (it) act",
            "legally valid",
            "verify visit",
            "20 digit barcode number",
        ),
        supportive=(
            "documents verified", "school leaving certificate", "income certificate",
            "tahsildar", "photo id", "ration card", "electoral photo id",
            "tehsil", "taluka", "district", "village",
            "ordinarily resides", "ordinarily reside", "family", "son of", "daughter of",
            "amended from time to time", "recognised as",
            "place", "date", "seal of office", "with the seal of office",
            "printed by", "omtid", "vle name", "sdo", "dy.col",
            "valid for the period", "date of issue", "signature valid",
        ),
        min_confidence=0.08,
    ),
    DocumentType.AADHAAR: KeywordProfile(
        required=("aadhaar", "आधार", "unique identification", "uidai"),
        supportive=("government of india", "address", "dob", "male", "female", "vid"),
    ),
    DocumentType.MEDICAL: KeywordProfile(
        required=("medical certificate", "medical report", "hospital", "doctor", "diagnosis"),
        supportive=("patient", "treatment", "injury", "prescription", "clinical"),
    ),
    DocumentType.BANK_PASSBOOK: KeywordProfile(
        required=("bank passbook", "account statement", "bank account", "savings account"),
        supportive=("ifsc", "branch", "balance", "transaction", "deposit", "withdrawal"),
    ),
    DocumentType.MARRIAGE_CERTIFICATE: KeywordProfile(
        required=(
            "marriage certificate",
            "certificate of marriage",
            "registrar of marriages",
            "marriage registration",
            "special marriage act",
            "hindu marriage act",
            "maharashtra regulation of marriage bureaus",
            "विवाह प्रमाणपत्र",
            "विवाह नोंदणी",
        ),
        supportive=(
            "bride", "bridegroom", "husband", "wife", "solemnized", "solemnised",
            "witness", "date of marriage", "place of marriage", "registration no",
        ),
        min_confidence=0.12,
    ),
    DocumentType.ADDRESS_PROOF: KeywordProfile(
        required=(
            "address proof",
            "proof of address",
            "residence certificate",
            "domicile certificate",
            "electricity bill",
            "utility bill",
            "electors photo identity card",
            "rent agreement",
            "leave and licence",
            "निवास प्रमाणपत्र",
        ),
        supportive=(
            "address", "resident", "consumer no", "billing period", "house no",
            "ward", "pin code", "village", "taluka", "district",
        ),
        min_confidence=0.12,
    ),
}


# Accepted detected types per normalized expected type
TYPE_ALIASES: dict[str, tuple[str, ...]] = {
    "castecertificate": ("castecertificate", "caste"),
    "fir": ("fir",),
    "aadhaar": ("aadhaar", "aadhar"),
    "medical": ("medical",),
    "bankpassbook": ("bankpassbook", "bank"),
    "marriagecertificate": ("marriagecertificate", "marriage"),
    # Aadhaar and passbooks both print the holder's address
    "addressproof": ("addressproof", "address", "aadhaar", "bankpassbook"),
}


DOCUMENT_LABELS: dict[str, str] = {
    "fir": "FIR (First Information Report)",
    "casteCertificate": "Caste Certificate",
    "aadhaar": "Aadhaar Card",
    "medical": "Medical Report",
    "bankPassbook": "Bank Passbook",
    "marriageCertificate": "Marriage Certificate",
    "addressProof": "Address Proof",
}


def get_document_label(doc_type: str) -> str:
    """Human-readable label; accepts camelCase or all-lowercase keys."""
    doc_type = getattr(doc_type, "value", doc_type)
    if doc_type in DOCUMENT_LABELS:
        return DOCUMENT_LABELS[doc_type]
    for key, label in DOCUMENT_LABELS.items():
        if key.lower() == doc_type:
            return label
    return doc_type


def normalize_type(doc_type: str) -> str:
    doc_type = getattr(doc_type, "value", doc_type)
    return doc_type.lower().replace("_", "").replace("-", "")


def types_match(expected_type: str, detected_type: str) -> bool:
    """Exact match after normalization, or detected is an accepted alias."""
    expected = normalize_type(expected_type)
    detected = normalize_type(detected_type)
    if expected == detected:
        return True
    return detected in TYPE_ALIASES.get(expected, (expected,))


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ClassificationResult:
    detected_type: str
    confidence: float
    all_scores: dict[str, float] = field(default_factory=dict)
    matched_keywords: list[str] = field(default_factory=list)

    @property
    def is_unknown(self) -> bool:
        return self.detected_type == DocumentType.UNKNOWN.value

    def to_dict(self) -> dict:
        return {
            "detectedType": self.detected_type,
            "confidence": self.confidence,
            "allScores": self.all_scores,
            "matchedKeywords": self.matched_keywords,
        }


@dataclass
class VerificationResult:
    is_valid: bool
    message: str
    verified: bool = False
    skipped: bool = False
    detected_type: Optional[str] = None
    expected_type: Optional[str] = None
    confidence: Optional[float] = None
    matched_keywords: list[str] = field(default_factory=list)
    classification: Optional[ClassificationResult] = None

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "message": self.message,
            "verified": self.verified,
            "skipped": self.skipped,
            "detectedType": self.detected_type,
            "expectedType": self.expected_type,
            "confidence": self.confidence,
            "matchedKeywords": self.matched_keywords,
            "classification": self.classification.to_dict() if self.classification else None,
        }


# =============================================================================
# TEXT EXTRACTION
# =============================================================================

async def extract_text_from_pdf(pdf_bytes: bytes) -> Optional[str]:
    """Native text of a PDF, lowercased. None when the file cannot be parsed."""
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, OSError) as e:
        logger.error("PDF parsing error: %s", e)
        return None

    text = "\n".join(pages)
    logger.info("PDF text extracted: %d characters from %d pages", len(text), len(pages))
    if text:
        logger.debug("First 200 chars: %r", text[:200].lower())
    return text.lower()


async def _extract_with_vision(
    image_bytes: bytes,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    settings = get_settings()
    payload = {
        "requests": [{
            "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
            "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
        }]
    }

    try:
        async with httpx.AsyncClient(timeout=settings.vision_timeout_seconds, transport=transport) as client:
            response = await client.post(settings.vision_api_url, params={"key": api_key}, json=payload)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        if status == 403:
            logger.error("Vision API 403: API key invalid or Cloud Vision API not enabled")
        elif status == 401:
            logger.error("Vision API 401: invalid API key")
        else:
            logger.error("Vision API HTTP %s: %s", status, e.response.text[:500])
        return None
    except httpx.HTTPError as e:
        logger.error("Vision API request failed: %s", e)
        return None
    except ValueError as e:
        logger.error("Vision API returned a non-JSON body: %s", e)
        return None

    if not isinstance(data, dict):
        logger.error("Vision API returned unexpected payload type %s", type(data).__name__)
        return None

    first = (data.get("responses") or [{}])[0]
    if first.get("error"):
        logger.error("Vision API error: %s", first["error"].get("message"))
        return None

    annotations = first.get("textAnnotations") or []
    if not annotations:
        logger.info("No text found in image")
        return ""

    text = annotations[0].get("description", "").lower()
    logger.info("Image text extracted: %d characters", len(text))
    return text


def _tesseract_available() -> bool:
    import pytesseract

    try:
        pytesseract.get_tesseract_version()
    except pytesseract.TesseractNotFoundError:
        return False
    return True


async def _extract_with_tesseract(image_bytes: bytes) -> Optional[str]:
    import pytesseract
    from PIL import Image, UnidentifiedImageError

    if not _tesseract_available():
        logger.warning("Tesseract binary not installed, cannot OCR image locally")
        return None

    try:
        image = Image.open(io.BytesIO(image_bytes))
        if image.mode != "RGB":
            image = image.convert("RGB")
        # Devanagari phrases appear on caste and marriage certificates
        text = pytesseract.image_to_string(image, lang="eng+hin")
    except (UnidentifiedImageError, pytesseract.TesseractError) as e:
        logger.error("Tesseract OCR error: %s", e)
        return None

    logger.info("Tesseract extracted %d characters", len(text))
    return text.lower()


async def extract_text_from_image(
    image_bytes: bytes,
    mime_type: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """
    OCR an image.

    Google Cloud Vision when GOOGLE_CLOUD_VISION_API_KEY is configured,
    otherwise local Tesseract when enabled. Returns None when no OCR
    method could run, "" when the image holds no text.
    """
    settings = get_settings()

    if settings.vision_configured:
        logger.info("Calling Google Cloud Vision API for %s OCR", mime_type)
        return await _extract_with_vision(image_bytes, settings.google_cloud_vision_api_key, transport)

    logger.warning("Google Cloud Vision API key not configured")
    if settings.tesseract_fallback:
        return await _extract_with_tesseract(image_bytes)
    return None


async def extract_text(file_bytes: bytes, mime_type: str) -> Optional[str]:
    """Dispatch on MIME type. Callers check support with is_supported_mime first."""
    mime_type = mime_type.lower()
    if mime_type in PDF_MIME_TYPES:
        return await extract_text_from_pdf(file_bytes)
    return await extract_text_from_image(file_bytes, mime_type)


def is_supported_mime(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    return mime_type.lower() in PDF_MIME_TYPES | IMAGE_MIME_TYPES


# =============================================================================
# CLASSIFICATION
# =============================================================================

def score_document_type(text: str, profile: KeywordProfile) -> tuple[float, list[str]]:
    """
    Confidence of one profile against lowercase text, plus the phrases hit.

    Confidence is zero unless a required phrase matched.
    """
    score = 0
    required_matches = 0
    matched: list[str] = []

    for keyword in profile.required:
        if keyword.lower() in text:
            score += REQUIRED_WEIGHT
            required_matches += 1
            matched.append(keyword)

    for keyword in profile.supportive:
        if keyword.lower() in text:
            score += SUPPORTIVE_WEIGHT
            matched.append(keyword)

    if required_matches == 0 or profile.max_score == 0:
        return 0.0, matched
    return score / profile.max_score, matched


def classify_document(text: Optional[str]) -> ClassificationResult:
    """Pick the best-scoring document type for extracted text."""
    if not text or not text.strip():
        logger.info("No text to classify")
        return ClassificationResult(detected_type=DocumentType.UNKNOWN.value, confidence=0.0)

    text = text.lower()
    scores: dict[str, float] = {}
    matches: dict[str, list[str]] = {}

    for doc_type, profile in DOCUMENT_KEYWORDS.items():
        confidence, matched = score_document_type(text, profile)
        scores[doc_type.value] = confidence
        matches[doc_type.value] = matched
        if matched:
            logger.debug("%s: %d matches (%s)", doc_type.value, len(matched), ", ".join(matched[:5]))

    best_type = DocumentType.UNKNOWN.value
    best_confidence = 0.0
    for doc_type, confidence in scores.items():
        if confidence > best_confidence:
            best_type, best_confidence = doc_type, confidence

    logger.info("Classification result: %s (confidence: %.1f%%)", best_type, best_confidence * 100)

    return ClassificationResult(
        detected_type=best_type,
        confidence=best_confidence,
        all_scores=scores,
        matched_keywords=matches.get(best_type, []),
    )


def min_confidence_for(doc_type: str) -> float:
    try:
        return DOCUMENT_KEYWORDS[DocumentType(doc_type)].min_confidence
    except (ValueError, KeyError):
        return DEFAULT_MIN_CONFIDENCE


# =============================================================================
# VERIFICATION
# =============================================================================

async def verify_document_type(file_bytes: bytes, mime_type: str, expected_type: str) -> VerificationResult:
    """
    Verify that an uploaded document matches the expected document type.

    Unreadable, empty and unrecognizable files are rejected. A mismatch is
    rejected only when the detected type clears its own threshold.
    """
    settings = get_settings()
    expected_label = get_document_label(expected_type)
    logger.info("Verifying document: mime=%s expected=%s", mime_type, expected_type)

    if not is_supported_mime(mime_type):
        logger.info("Unsupported file type for verification: %s", mime_type)
        return VerificationResult(
            is_valid=True,
            message="Document accepted (unsupported file type for verification)",
            skipped=True,
            expected_type=expected_type,
        )

    extracted_text = await extract_text(file_bytes, mime_type)

    if extracted_text is None:
        logger.warning("Text extraction failed, rejecting document")
        return VerificationResult(
            is_valid=False,
            message=(
                f"Cannot verify document. Please upload a clear, readable "
                f"{expected_label} in PDF or image format."
            ),
            expected_type=expected_type,
        )

    text_length = len(extracted_text.strip())
    if text_length < settings.min_verification_text_length:
        logger.warning("Document has insufficient text (%d chars), rejecting", text_length)
        return VerificationResult(
            is_valid=False,
            message=(
                f"Document appears to be empty, scanned, or has unreadable text. "
                f"Please upload a filled {expected_label} with readable text."
            ),
            expected_type=expected_type,
        )

    classification = classify_document(extracted_text)

    if classification.is_unknown:
        logger.warning("Could not identify document type, rejecting")
        return VerificationResult(
            is_valid=False,
            message=f"Could not identify this as a {expected_label}. Please upload a valid {expected_label} document.",
            expected_type=expected_type,
            confidence=classification.confidence,
            classification=classification,
        )

    if types_match(expected_type, classification.detected_type):
        logger.info("Document type matches expected type %s", expected_type)
        return VerificationResult(
            is_valid=True,
            message="Document verified successfully",
            verified=True,
            detected_type=classification.detected_type,
            expected_type=expected_type,
            confidence=classification.confidence,
            matched_keywords=classification.matched_keywords,
            classification=classification,
        )

    if classification.confidence >= min_confidence_for(classification.detected_type):
        detected_label = get_document_label(classification.detected_type)
        logger.warning("Document type mismatch: expected=%s detected=%s", expected_label, detected_label)
        return VerificationResult(
            is_valid=False,
            message=(
                f"Invalid document: Expected {expected_label} but detected {detected_label}. "
                f"Please upload the correct document."
            ),
            detected_type=classification.detected_type,
            expected_type=expected_type,
            confidence=classification.confidence,
            matched_keywords=classification.matched_keywords,
            classification=classification,
        )

    logger.info("Low confidence mismatch, allowing upload")
    return VerificationResult(
        is_valid=True,
        message="Document uploaded (verification confidence was low)",
        expected_type=expected_type,
        classification=classification,
    )
