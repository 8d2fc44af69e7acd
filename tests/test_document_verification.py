"""
Tests for the document verification service: keyword classification,
type aliases and the accept/reject decision.
"""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import AADHAAR_TEXT, FIR_PDF_LINES, FIR_TEXT, make_text_pdf
from nyayasetu.services.document_verification import (
    DOCUMENT_KEYWORDS,
    DocumentType,
    KeywordProfile,
    classify_document,
    get_document_label,
    min_confidence_for,
    normalize_type,
    score_document_type,
    types_match,
    verify_document_type,
)

LOW_CONFIDENCE_FIR_TEXT = "fir no 45 was mentioned in this letter regarding the complaint lodged earlier"
UNRELATED_TEXT = "the quick brown fox jumps over the lazy dog near the river bank on a sunny day"

CASTE_TEXT = (
    "government of maharashtra caste certificate form 8. this is to certify that "
    "shri ramesh kamble son of shri dattu kamble of village hadapsar taluka haveli "
    "district pune in the state of maharashtra belongs to the mahar caste which is "
    "recognised as a scheduled caste. sub divisional officer pune. date of issue 12/05/2023"
)

PASSBOOK_TEXT = (
    "state bank of india savings account passbook. branch hadapsar pune ifsc sbin0001234. "
    "account holder sunita kamble. date particulars withdrawal deposit balance"
)

MARRIAGE_TEXT = (
    "certificate of marriage under the special marriage act 1954. this is to certify that "
    "the marriage between bridegroom rahul more and bride sunita kamble was solemnized "
    "before the registrar of marriages pune. date of marriage 14/02/2024. witness 1 witness 2"
)


# =============================================================================
# Scoring & Classification
# =============================================================================

class TestScoring:
    """Weighted keyword scoring."""

    def test_required_phrase_is_needed_for_any_score(self):
        profile = KeywordProfile(required=("medical report",), supportive=("patient", "treatment"))
        confidence, matched = score_document_type("patient under treatment", profile)
        assert confidence == 0.0
        assert matched == ["patient", "treatment"]

    def test_required_and_supportive_weights(self):
        profile = KeywordProfile(required=("medical report",), supportive=("patient", "treatment"))
        confidence, matched = score_document_type("medical report of the patient", profile)
        # (3 + 1) / (3 + 2)
        assert confidence == pytest.approx(0.8)
        assert matched == ["medical report", "patient"]

    def test_max_score(self):
        profile = DOCUMENT_KEYWORDS[DocumentType.AADHAAR]
        assert profile.max_score == 4 * 3 + 6


class TestClassification:
    """Document type classification from extracted text."""

    def test_empty_text_is_unknown(self):
        result = classify_document("   ")
        assert result.detected_type == "unknown"
        assert result.confidence == 0.0
        assert result.all_scores == {}

    def test_none_text_is_unknown(self):
        assert classify_document(None).is_unknown

    def test_classifies_fir(self):
        result = classify_document(FIR_TEXT)
        assert result.detected_type == DocumentType.FIR.value
        assert result.confidence > DOCUMENT_KEYWORDS[DocumentType.FIR].min_confidence
        assert "first information report" in result.matched_keywords

    def test_classifies_aadhaar(self):
        result = classify_document(AADHAAR_TEXT)
        assert result.detected_type == DocumentType.AADHAAR.value
        assert result.confidence > 0.5

    def test_classifies_caste_certificate(self):
        result = classify_document(CASTE_TEXT)
        assert result.detected_type == DocumentType.CASTE_CERTIFICATE.value

    def test_classifies_bank_passbook(self):
        result = classify_document(PASSBOOK_TEXT)
        assert result.detected_type == DocumentType.BANK_PASSBOOK.value

    def test_classifies_marriage_certificate(self):
        result = classify_document(MARRIAGE_TEXT)
        assert result.detected_type == DocumentType.MARRIAGE_CERTIFICATE.value

    def test_classification_is_case_insensitive(self):
        assert classify_document(FIR_TEXT.upper()).detected_type == DocumentType.FIR.value

    def test_scores_reported_for_every_type(self):
        result = classify_document(FIR_TEXT)
        expected = {t.value for t in DOCUMENT_KEYWORDS}
        assert set(result.all_scores) == expected

    def test_unrelated_text_is_unknown(self):
        result = classify_document(UNRELATED_TEXT)
        assert result.is_unknown
        assert all(score == 0 for score in result.all_scores.values())


# =============================================================================
# Aliases & Labels
# =============================================================================

class TestTypeMatching:

    @pytest.mark.parametrize("expected,detected", [
        ("casteCertificate", "casteCertificate"),
        ("caste_certificate", "casteCertificate"),
        ("casteCertificate", "caste"),
        ("aadhaar", "aadhar"),
        ("bankPassbook", "bank"),
        ("marriageCertificate", "marriage"),
        ("addressProof", "aadhaar"),
        ("addressProof", "bankPassbook"),
    ])
    def test_matches(self, expected, detected):
        assert types_match(expected, detected)

    @pytest.mark.parametrize("expected,detected", [
        ("fir", "casteCertificate"),
        ("aadhaar", "addressProof"),
        ("medical", "fir"),
        ("bankPassbook", "aadhaar"),
    ])
    def test_mismatches(self, expected, detected):
        assert not types_match(expected, detected)

    def test_normalize_type(self):
        assert normalize_type("Bank-Pass_book") == "bankpassbook"


class TestLabels:

    def test_camel_case_key(self):
        assert get_document_label("casteCertificate") == "Caste Certificate"

    def test_lowercase_key(self):
        assert get_document_label("bankpassbook") == "Bank Passbook"

    def test_enum_member(self):
        assert get_document_label(DocumentType.FIR) == "FIR (First Information Report)"

    def test_unknown_key_echoes(self):
        assert get_document_label("rationCard") == "rationCard"

    def test_default_threshold(self):
        assert min_confidence_for("aadhaar") == 0.15
        assert min_confidence_for("fir") == 0.10
        assert min_confidence_for("nonsense") == 0.15


# =============================================================================
# Verification Decision
# =============================================================================

def _patch_extraction(text):
    return patch(
        "nyayasetu.services.document_verification.extract_text",
        new=AsyncMock(return_value=text),
    )


class TestVerifyDocumentType:

    async def test_unsupported_mime_is_skipped(self):
        with _patch_extraction("never called") as mock_extract:
            result = await verify_document_type(b"data", "application/msword", "fir")
        assert result.is_valid
        assert result.skipped
        assert not result.verified
        assert result.message == "Document accepted (unsupported file type for verification)"
        mock_extract.assert_not_called()

    async def test_extraction_failure_rejects(self):
        with _patch_extraction(None):
            result = await verify_document_type(b"data", "application/pdf", "fir")
        assert not result.is_valid
        assert result.message.startswith("Cannot verify document")
        assert "FIR (First Information Report)" in result.message

    async def test_short_text_rejects(self):
        with _patch_extraction("aadhaar 1234"):
            result = await verify_document_type(b"data", "image/png", "aadhaar")
        assert not result.is_valid
        assert "empty, scanned, or has unreadable text" in result.message
        assert "Aadhaar Card" in result.message

    async def test_unknown_document_rejects(self):
        with _patch_extraction(UNRELATED_TEXT):
            result = await verify_document_type(b"data", "image/jpeg", "aadhaar")
        assert not result.is_valid
        assert result.message.startswith("Could not identify this as a Aadhaar Card")

    async def test_matching_document_is_verified(self):
        with _patch_extraction(FIR_TEXT):
            result = await verify_document_type(b"data", "application/pdf", "fir")
        assert result.is_valid
        assert result.verified
        assert result.detected_type == "fir"
        assert result.message == "Document verified successfully"
        assert result.matched_keywords

    async def test_alias_match_is_verified(self):
        with _patch_extraction(AADHAAR_TEXT):
            result = await verify_document_type(b"data", "image/png", "addressProof")
        assert result.is_valid
        assert result.verified
        assert result.detected_type == "aadhaar"

    async def test_confident_mismatch_rejects(self):
        with _patch_extraction(FIR_TEXT):
            result = await verify_document_type(b"data", "application/pdf", "casteCertificate")
        assert not result.is_valid
        assert result.detected_type == "fir"
        assert result.message.startswith(
            "Invalid document: Expected Caste Certificate but detected FIR (First Information Report)"
        )

    async def test_low_confidence_mismatch_is_accepted_unverified(self):
        with _patch_extraction(LOW_CONFIDENCE_FIR_TEXT):
            result = await verify_document_type(b"data", "application/pdf", "aadhaar")
        assert result.is_valid
        assert not result.verified
        assert result.message == "Document uploaded (verification confidence was low)"
        assert result.classification is not None
        assert result.classification.detected_type == "fir"

    async def test_to_dict_uses_wire_names(self):
        with _patch_extraction(FIR_TEXT):
            result = await verify_document_type(b"data", "application/pdf", "fir")
        body = result.to_dict()
        assert body["isValid"] is True
        assert body["detectedType"] == "fir"
        assert body["classification"]["detectedType"] == "fir"


class TestVerifyRealPdf:
    """Extraction runs through pypdf; nothing is patched."""

    async def test_fir_pdf_is_verified(self):
        result = await verify_document_type(make_text_pdf(*FIR_PDF_LINES), "application/pdf", "fir")
        assert result.is_valid
        assert result.verified
        assert result.detected_type == "fir"
        assert "first information report" in result.matched_keywords

    async def test_fir_pdf_declared_as_caste_certificate_is_rejected(self):
        result = await verify_document_type(make_text_pdf(*FIR_PDF_LINES), "application/pdf", "casteCertificate")
        assert not result.is_valid
        assert result.detected_type == "fir"

    async def test_pdf_without_text_is_rejected(self):
        result = await verify_document_type(make_text_pdf(), "application/pdf", "fir")
        assert not result.is_valid
        assert "empty, scanned, or has unreadable text" in result.message
