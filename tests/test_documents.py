"""
Tests for the Documents API - verified upload, listing, download and deletion.
Text extraction is patched; the classifier itself runs for real.
"""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from conftest import AADHAAR_TEXT, FIR_PDF_LINES, FIR_TEXT, make_text_pdf

EXTRACT = "nyayasetu.services.document_verification.extract_text"


def extraction_returns(text):
    return patch(EXTRACT, new=AsyncMock(return_value=text))


async def upload(client: AsyncClient, grievance_id: str, document_type: str,
                 content: bytes = b"%PDF-1.4 test", filename: str = "doc.pdf",
                 mime_type: str = "application/pdf"):
    return await client.post(
        "/api/documents/upload",
        data={"grievanceId": grievance_id, "documentType": document_type},
        files={"file": (filename, content, mime_type)},
    )


# =============================================================================
# Upload
# =============================================================================

class TestUpload:

    async def test_verified_upload(self, grievance: dict, victim_client: AsyncClient, settings):
        with extraction_returns(FIR_TEXT):
            response = await upload(victim_client, grievance["id"], "fir", filename="fir_copy.pdf")

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["message"] == "Document uploaded and verified successfully"
        assert body["data"]["documentType"] == "fir"
        assert body["data"]["fileName"] == "fir_copy.pdf"
        assert body["data"]["verification"]["verified"] is True
        assert body["data"]["verification"]["confidence"] > 0

    async def test_real_pdf_upload_is_verified(self, grievance: dict, victim_client: AsyncClient):
        response = await upload(victim_client, grievance["id"], "fir", content=make_text_pdf(*FIR_PDF_LINES))
        assert response.status_code == 201, response.text
        assert response.json()["data"]["verification"]["verified"] is True

    async def test_mismatched_document_rejected(self, grievance: dict, victim_client: AsyncClient):
        with extraction_returns(FIR_TEXT):
            response = await upload(victim_client, grievance["id"], "aadhaar")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["detectedType"] == "fir"
        assert body["expectedType"] == "aadhaar"
        assert body["verification"]["verified"] is False
        assert body["message"].startswith("Invalid document: Expected Aadhaar Card")

    async def test_unreadable_document_rejected(self, grievance: dict, victim_client: AsyncClient):
        with extraction_returns(None):
            response = await upload(victim_client, grievance["id"], "fir")
        assert response.status_code == 400
        assert response.json()["message"].startswith("Cannot verify document")

    async def test_duplicate_type_rejected(self, grievance: dict, victim_client: AsyncClient):
        with extraction_returns(FIR_TEXT):
            first = await upload(victim_client, grievance["id"], "fir")
            second = await upload(victim_client, grievance["id"], "fir")
        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["message"] == "A fir document has already been uploaded for this grievance"

    async def test_missing_fields(self, grievance: dict, victim_client: AsyncClient):
        response = await victim_client.post(
            "/api/documents/upload",
            data={"grievanceId": grievance["id"]},
            files={"file": ("doc.pdf", b"%PDF", "application/pdf")},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Grievance ID and document type are required"

    async def test_no_file(self, grievance: dict, victim_client: AsyncClient):
        response = await victim_client.post(
            "/api/documents/upload",
            data={"grievanceId": grievance["id"], "documentType": "fir"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "No file uploaded"

    async def test_unknown_document_type(self, grievance: dict, victim_client: AsyncClient):
        response = await upload(victim_client, grievance["id"], "rationCard")
        assert response.status_code == 400

    async def test_disallowed_file_type(self, grievance: dict, victim_client: AsyncClient):
        response = await upload(victim_client, grievance["id"], "fir", filename="fir.gif", mime_type="image/gif")
        assert response.status_code == 400

    async def test_unknown_grievance(self, victim_client: AsyncClient):
        response = await upload(victim_client, "missing", "fir")
        assert response.status_code == 404
        assert response.json()["message"] == "Grievance not found"

    async def test_other_victim_forbidden(self, grievance: dict, other_victim_client: AsyncClient):
        response = await upload(other_victim_client, grievance["id"], "fir")
        assert response.status_code == 403

    async def test_file_too_large(self, grievance: dict, victim_client: AsyncClient, settings, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size_mb", 1)
        content = b"0" * (1024 * 1024 + 1)
        response = await upload(victim_client, grievance["id"], "fir", content=content)
        assert response.status_code == 413

    async def test_stored_on_disk(self, grievance: dict, victim_client: AsyncClient, settings):
        from pathlib import Path

        with extraction_returns(AADHAAR_TEXT):
            response = await upload(victim_client, grievance["id"], "aadhaar", content=b"\x89PNG data",
                                    filename="aadhaar.png", mime_type="image/png")
        assert response.status_code == 201

        folder = Path(settings.upload_dir) / "grievances" / grievance["id"]
        stored = list(folder.iterdir())
        assert len(stored) == 1
        assert stored[0].name.endswith("_aadhaar.png")
        assert stored[0].read_bytes() == b"\x89PNG data"


# =============================================================================
# Pre-submission Verify
# =============================================================================

class TestVerifyEndpoint:

    async def test_valid(self, victim_client: AsyncClient):
        with extraction_returns(AADHAAR_TEXT):
            response = await victim_client.post(
                "/api/documents/verify",
                data={"expectedDocumentType": "aadhaar"},
                files={"file": ("a.png", b"img", "image/png")},
            )
        assert response.status_code == 200
        verification = response.json()["verification"]
        assert verification["isValid"] is True
        assert verification["verified"] is True
        assert verification["detectedType"] == "aadhaar"
        assert "aadhaar" in verification["matchedKeywords"]

    async def test_invalid(self, victim_client: AsyncClient):
        with extraction_returns(AADHAAR_TEXT):
            response = await victim_client.post(
                "/api/documents/verify",
                data={"expectedDocumentType": "fir"},
                files={"file": ("a.png", b"img", "image/png")},
            )
        assert response.status_code == 400
        verification = response.json()["verification"]
        assert verification["isValid"] is False
        assert verification["expectedType"] == "fir"

    async def test_unsupported_type_is_skipped(self, victim_client: AsyncClient):
        response = await victim_client.post(
            "/api/documents/verify",
            data={"expectedDocumentType": "fir"},
            files={"file": ("a.docx", b"word", "application/msword")},
        )
        assert response.status_code == 200
        assert response.json()["verification"]["skipped"] is True

    async def test_requires_expected_type(self, victim_client: AsyncClient):
        response = await victim_client.post(
            "/api/documents/verify",
            files={"file": ("a.png", b"img", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Expected document type is required"


# =============================================================================
# Listing, Viewing, Download, Delete
# =============================================================================

@pytest.fixture
async def uploaded_fir(grievance: dict, victim_client: AsyncClient) -> dict:
    with extraction_returns(FIR_TEXT):
        response = await upload(victim_client, grievance["id"], "fir", content=b"%PDF fir bytes", filename="fir.pdf")
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestRetrieval:

    async def test_list_documents(self, grievance: dict, uploaded_fir: dict, victim_client: AsyncClient):
        response = await victim_client.get(f"/api/documents/grievance/{grievance['id']}")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        doc = body["data"][0]
        assert doc["id"] == uploaded_fir["documentId"]
        assert doc["uploadedBy"]["fullName"] == "Sunita Kamble"

    async def test_other_victim_cannot_list(self, grievance: dict, other_victim_client: AsyncClient):
        response = await other_victim_client.get(f"/api/documents/grievance/{grievance['id']}")
        assert response.status_code == 403

    async def test_stats(self, grievance: dict, uploaded_fir: dict, officer_client: AsyncClient):
        response = await officer_client.get(f"/api/documents/grievance/{grievance['id']}/stats")
        data = response.json()["data"]
        assert data["totalDocuments"] == 1
        assert data["totalSize"] == len(b"%PDF fir bytes")
        assert data["documentTypes"]["fir"] is True
        assert data["documentTypes"]["aadhaar"] is False
        assert set(data["documentTypes"]) == {
            "fir", "casteCertificate", "aadhaar", "medical", "bankPassbook", "marriageCertificate", "addressProof",
        }

    async def test_view(self, uploaded_fir: dict, victim_client: AsyncClient, settings):
        response = await victim_client.get(f"/api/documents/{uploaded_fir['documentId']}/view")
        data = response.json()["data"]
        assert data["viewUrl"] == f"{settings.backend_url}/api/documents/{uploaded_fir['documentId']}/download"
        assert data["mimeType"] == "application/pdf"

    async def test_officer_downloads(self, uploaded_fir: dict, officer_client: AsyncClient):
        response = await officer_client.get(f"/api/documents/{uploaded_fir['documentId']}/download")
        assert response.status_code == 200
        assert response.content == b"%PDF fir bytes"
        assert response.headers["cache-control"] == "private, no-store"

    async def test_victim_cannot_download(self, uploaded_fir: dict, victim_client: AsyncClient):
        response = await victim_client.get(f"/api/documents/{uploaded_fir['documentId']}/download")
        assert response.status_code == 403

    async def test_only_admin_deletes(
        self, grievance: dict, uploaded_fir: dict, officer_client: AsyncClient, admin_client: AsyncClient
    ):
        doc_id = uploaded_fir["documentId"]
        assert (await officer_client.delete(f"/api/documents/{doc_id}")).status_code == 403

        response = await admin_client.delete(f"/api/documents/{doc_id}")
        assert response.status_code == 200
        assert response.json()["message"] == "Document deleted successfully"

        listing = await officer_client.get(f"/api/documents/grievance/{grievance['id']}")
        assert listing.json()["count"] == 0
        assert (await officer_client.get(f"/api/documents/{doc_id}/view")).status_code == 404

    async def test_checklist_reflects_uploads(self, grievance: dict, uploaded_fir: dict, victim_client: AsyncClient):
        response = await victim_client.get(f"/api/grievances/{grievance['id']}/checklist")
        required = {item["documentType"]: item["uploaded"] for item in response.json()["data"]["required"]}
        assert required["fir"] is True
        assert required["aadhaar"] is False
