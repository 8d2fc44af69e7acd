"""
NyayaSetu - FastAPI Application
Relief disbursement portal for victims of caste atrocities and intercaste
marriage incentive applicants.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from nyayasetu.core.config import get_settings
from nyayasetu.core.database import close_db, init_db
from nyayasetu.core.errors import setup_exception_handlers
from nyayasetu.core.logging_config import request_id_var, setup_logging
from nyayasetu.core.rate_limit import limiter, rate_limit_exceeded_handler
from nyayasetu.core.security_headers import SecurityHeadersMiddleware
from nyayasetu.routers import auth, chatbot, documents, funds, grievances, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create runtime directories and tables on startup, release the engine on shutdown."""
    settings = get_settings()

    logger.info("=" * 60)
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    upload_root = Path(settings.upload_dir) / "grievances"
    upload_root.mkdir(parents=True, exist_ok=True)
    logger.info("   Upload directory: %s", upload_root.resolve())

    await init_db()
    logger.info("   Database ready")

    if settings.vision_configured:
        logger.info("   OCR: Google Cloud Vision")
    elif settings.tesseract_fallback:
        logger.info("   OCR: local Tesseract (GOOGLE_CLOUD_VISION_API_KEY not set)")
    else:
        logger.warning("   OCR disabled: image documents cannot be verified")
    logger.info("=" * 60)

    yield

    await close_db()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures the FastAPI application.
    """
    settings = get_settings()
    setup_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=Path(settings.log_file) if settings.log_file else None,
    )

    tags_metadata = [
        {"name": "Health", "description": "Liveness and readiness checks."},
        {"name": "Authentication", "description": "Registration, login and sessions."},
        {"name": "Grievances", "description": "Relief applications, review and phased disbursement."},
        {"name": "Intercaste Marriage", "description": "Intercaste marriage incentive applications."},
        {"name": "Documents", "description": "Document upload with type verification."},
        {"name": "Funds", "description": "Fund sanction, allocation and utilization."},
        {"name": "Help Chatbot", "description": "FAQ answers in English and Hindi."},
    ]

    app = FastAPI(
        title=settings.app_name,
        description=f"""{settings.app_description}

## Authentication
Log in with `POST /api/auth/login` and send the returned token as
`Authorization: Bearer <token>`. Browsers may use the session cookie instead.

## Error Responses
All errors return `{{"success": false, "message": "..."}}`.
""",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
        openapi_tags=tags_metadata,
    )

    # =========================================================================
    # Rate Limiting
    # =========================================================================
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # =========================================================================
    # Middleware (first added = last to run)
    # =========================================================================
    app.add_middleware(
        SecurityHeadersMiddleware,
        enable_hsts=settings.backend_url.startswith("https"),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-Id"] = request_id
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================
    setup_exception_handlers(app)

    # =========================================================================
    # Routers
    # =========================================================================
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(grievances.router)
    app.include_router(grievances.intercaste_router)
    app.include_router(documents.router)
    app.include_router(funds.router)
    app.include_router(chatbot.router)

    return app


app = create_app()
