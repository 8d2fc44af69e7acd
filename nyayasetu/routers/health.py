"""
NyayaSetu - Health Router
Liveness and readiness checks.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from nyayasetu import __version__
from nyayasetu.core.config import get_settings
from nyayasetu.core.database import ping_db

router = APIRouter(tags=["Health"])


@router.get("/api/health")
async def health():
    settings = get_settings()
    return {
        "success": True,
        "status": "ok",
        "app": settings.app_name,
        "version": __version__,
        "ocr": "google-vision" if settings.vision_configured else "tesseract" if settings.tesseract_fallback else "disabled",
    }


@router.get("/api/health/ready")
async def readiness():
    if not await ping_db():
        return JSONResponse(status_code=503, content={"success": False, "status": "unavailable", "database": "error"})
    return {"success": True, "status": "ready", "database": "ok"}
