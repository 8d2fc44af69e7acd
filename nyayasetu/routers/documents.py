"""
NyayaSetu - Documents Router
Upload, verification and retrieval of case documents.

Every upload is checked by the document verification service before it is
stored: a file that is clearly a different document than the one declared
is refused with the detected type in the response.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from nyayasetu.core.config import get_settings
from nyayasetu.core.database import get_db
from nyayasetu.core.errors import NotFoundError, PermissionDeniedError
from nyayasetu.core.rate_limit import UPLOAD_LIMIT, VERIFY_LIMIT, limiter
from nyayasetu.core.security import require_permission, require_user
from nyayasetu.core.user_context import UserContext
from nyayasetu.core.utc import isoformat
from nyayasetu.models.models import Document, Grievance
from nyayasetu.models.schemas import document_to_dict, envelope
from nyayasetu.services import document_verification as verification
from nyayasetu.services.document_verification import DocumentType
from nyayasetu.services.storage import create_grievance_folder, resolve_path, upload_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])

UPLOADABLE_TYPES = {t.value for t in DocumentType if t != DocumentType.UNKNOWN}


# =============================================================================
# Helpers
# =============================================================================

async def _read_upload(file: UploadFile) -> bytes:
    settings = get_settings()
    content = await file.read()
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large (max {settings.max_upload_size_mb}MB)",
        )
    return content


def _check_document_type(document_type: str) -> None:
    if document_type not in UPLOADABLE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid document type. Allowed: {', '.join(sorted(UPLOADABLE_TYPES))}",
        )


async def _load_document(db: AsyncSession, document_id: str) -> Document:
    document = await db.get(Document, document_id)
    if document is None or document.status != "active":
        raise NotFoundError("Document not found")
    return document


async def _load_grievance(db: AsyncSession, grievance_id: str) -> Grievance:
    grievance = await db.get(Grievance, grievance_id)
    if grievance is None:
        raise NotFoundError("Grievance not found")
    return grievance


# =============================================================================
# Upload & Verify
# =============================================================================

@router.post("/upload", status_code=201)
@limiter.limit(UPLOAD_LIMIT)
async def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    grievance_id: Optional[str] = Form(None, alias="grievanceId"),
    document_type: Optional[str] = Form(None, alias="documentType"),
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Upload a document to a grievance.

    The file is verified against document_type before it is stored. Only
    one active document of each type is kept per grievance.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not grievance_id or not document_type:
        raise HTTPException(status_code=400, detail="Grievance ID and document type are required")
    _check_document_type(document_type)

    settings = get_settings()
    mime_type = (file.content_type or "application/octet-stream").lower()
    if mime_type not in settings.allowed_mime_types_set:
        raise HTTPException(status_code=400, detail="Invalid file type. Only PDF, JPG and PNG files are allowed")

    grievance = await _load_grievance(db, grievance_id)
    if user.is_victim and grievance.user_id != user.user_id:
        raise PermissionDeniedError("You do not have permission to upload documents to this grievance")

    existing = await Document.find_by_type(db, grievance_id, document_type)
    if existing is not None:
        raise HTTPException(
            status_code=400,
            detail=f"A {document_type} document has already been uploaded for this grievance",
        )

    content = await _read_upload(file)

    logger.info("Verifying %s upload for grievance %s", document_type, grievance_id)
    result = await verification.verify_document_type(content, mime_type, document_type)
    if not result.is_valid:
        raise HTTPException(
            status_code=400,
            detail={
                "message": result.message,
                "detectedType": result.detected_type,
                "expectedType": document_type,
                "verification": {"verified": False, "confidence": result.confidence},
            },
        )

    folder = await create_grievance_folder(grievance_id)
    stored = await upload_file(content, file.filename, mime_type, folder)

    document = Document(
        grievance_id=grievance_id,
        document_type=document_type,
        original_file_name=file.filename,
        storage_file_id=stored.file_id,
        storage_folder=stored.folder,
        mime_type=mime_type,
        file_size=stored.size,
        uploaded_by=user.user_id,
        verified=result.verified,
        verification_skipped=result.skipped,
        verification_confidence=result.confidence,
    )
    db.add(document)
    await db.flush()

    message = "Document uploaded and verified successfully" if result.verified else "Document uploaded successfully"
    return envelope(
        {
            "documentId": document.id,
            "documentType": document.document_type,
            "fileName": document.original_file_name,
            "fileSize": document.file_size,
            "uploadedAt": isoformat(document.uploaded_at),
            "verification": {
                "verified": result.verified,
                "skipped": result.skipped,
                "confidence": result.confidence,
            },
        },
        message,
    )


@router.post("/verify")
@limiter.limit(VERIFY_LIMIT)
async def verify_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    expected_document_type: Optional[str] = Form(None, alias="expectedDocumentType"),
    user: UserContext = Depends(require_user),
):
    """Check a file against a document type without storing it."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided for verification")
    if not expected_document_type:
        raise HTTPException(status_code=400, detail="Expected document type is required")

    content = await _read_upload(file)
    mime_type = (file.content_type or "application/octet-stream").lower()
    result = await verification.verify_document_type(content, mime_type, expected_document_type)

    if not result.is_valid:
        raise HTTPException(
            status_code=400,
            detail={
                "message": result.message,
                "verification": {
                    "isValid": False,
                    "verified": False,
                    "detectedType": result.detected_type,
                    "expectedType": expected_document_type,
                    "confidence": result.confidence,
                },
            },
        )

    return envelope(
        message=result.message,
        verification={
            "isValid": True,
            "verified": result.verified,
            "skipped": result.skipped,
            "detectedType": result.detected_type,
            "confidence": result.confidence,
            "matchedKeywords": result.matched_keywords,
        },
    )


# =============================================================================
# Listing
# =============================================================================

@router.get("/grievance/{grievance_id}")
async def list_grievance_documents(
    grievance_id: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    grievance = await _load_grievance(db, grievance_id)
    if not user.has_permission("document_view_all") and grievance.user_id != user.user_id:
        raise PermissionDeniedError("You do not have permission to view these documents")

    documents = await Document.find_by_grievance(db, grievance_id)
    return envelope([document_to_dict(d) for d in documents], count=len(documents))


@router.get("/grievance/{grievance_id}/stats")
async def grievance_document_stats(
    grievance_id: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    grievance = await _load_grievance(db, grievance_id)
    if not user.has_permission("document_view_all") and grievance.user_id != user.user_id:
        raise PermissionDeniedError("You do not have permission to view these documents")

    documents = await Document.find_by_grievance(db, grievance_id)
    present = {d.document_type for d in documents}
    return envelope({
        "totalDocuments": len(documents),
        "totalSize": sum(d.file_size or 0 for d in documents),
        "documentTypes": {t: t in present for t in sorted(UPLOADABLE_TYPES)},
    })


# =============================================================================
# Single Document
# =============================================================================

@router.get("/{document_id}/view")
async def view_document(
    document_id: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    document = await _load_document(db, document_id)
    if not user.has_permission("document_view_all"):
        grievance = await _load_grievance(db, document.grievance_id)
        if grievance.user_id != user.user_id:
            raise PermissionDeniedError("You do not have permission to view this document")

    url = f"{get_settings().backend_url.rstrip('/')}/api/documents/{document.id}/download"
    return envelope({
        "viewUrl": url,
        "downloadUrl": url,
        "fileName": document.original_file_name,
        "fileSize": document.file_size,
        "mimeType": document.mime_type,
    })


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    user: UserContext = Depends(require_permission("document_download")),
    db: AsyncSession = Depends(get_db),
):
    document = await _load_document(db, document_id)
    try:
        path = resolve_path(document.storage_folder, document.storage_file_id)
    except ValueError:
        raise NotFoundError("File not found on server") from None
    if not path.exists():
        raise NotFoundError("File not found on server")

    logger.info("Officer %s downloading document %s", user.user_id, document.id)
    return FileResponse(path, media_type=document.mime_type, filename=document.original_file_name)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    user: UserContext = Depends(require_permission("document_delete")),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete. The stored file is kept for audit."""
    document = await _load_document(db, document_id)
    document.soft_delete()
    logger.info("Admin %s deleted document %s", user.user_id, document.id)
    return envelope(message="Document deleted successfully")
