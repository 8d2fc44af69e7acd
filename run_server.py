"""
NyayaSetu Server Runner
=======================
Run this directly: python run_server.py
Host, port and debug reload come from the environment / .env file.
"""
import sys

# Console encoding for Windows (Devanagari in log lines)
if sys.platform == 'win32':
    try:
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')
    except (AttributeError, OSError):
        pass


def main():
    from nyayasetu.core.config import get_settings

    settings = get_settings()

    print()
    print("=" * 60)
    print(f"  {settings.app_name.upper()} SERVER v{settings.app_version}")
    print("=" * 60)
    print()
    print(f"  API:      http://localhost:{settings.port}/api")
    if settings.enable_docs:
        print(f"  API Docs: http://localhost:{settings.port}/api/docs")
    print(f"  Database: {settings.database_url.split('@')[-1]}")
    print(f"  OCR:      {'Google Cloud Vision' if settings.vision_configured else 'Tesseract fallback'}")
    print()
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    import uvicorn
    uvicorn.run(
        "nyayasetu.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
