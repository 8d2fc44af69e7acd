"""
NyayaSetu - Shared Test Fixtures
Provides reusable fixtures for authentication, database, and sample cases.
"""

import os
import shutil
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

# Configure test environment BEFORE importing app
TEST_UPLOAD_DIR = tempfile.mkdtemp(prefix="nyayasetu-test-uploads-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_nyayasetu.db"
os.environ["UPLOAD_DIR"] = TEST_UPLOAD_DIR
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OFFICER_INVITE_CODE"] = "TEST-OFFICER-CODE"
os.environ["PASSWORD_ITERATIONS"] = "1000"
os.environ["GOOGLE_CLOUD_VISION_API_KEY"] = ""
os.environ["TESSERACT_FALLBACK"] = "false"
os.environ["LOG_FILE"] = ""

from nyayasetu.main import app
from nyayasetu.core.config import get_settings


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture(scope="function", autouse=True)
async def setup_test_database():
    """Create database tables before each test and drop them after."""
    from nyayasetu.core.database import get_engine, Base
    from nyayasetu.models import models  # noqa: F401  registers the tables

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_files():
    """Remove the test database and upload directory after the run."""
    yield
    shutil.rmtree(TEST_UPLOAD_DIR, ignore_errors=True)
    for db_file in ["test_nyayasetu.db", "test_nyayasetu.db-shm", "test_nyayasetu.db-wal"]:
        if os.path.exists(db_file):
            try:
                os.remove(db_file)
            except PermissionError:
                pass


@pytest.fixture
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Anonymous async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    """A database session outside the request cycle."""
    from nyayasetu.core.database import get_db_session
    async with get_db_session() as session:
        yield session


# =============================================================================
# Users & Authenticated Clients
# =============================================================================

async def create_user(role: str, email: str, full_name: str, district: str = "Pune") -> tuple[str, str]:
    """Insert a user and a session directly. Returns (user_id, bearer token)."""
    from nyayasetu.core.database import get_db_session
    from nyayasetu.core.security import create_session, hash_password
    from nyayasetu.models.models import User

    async with get_db_session() as session:
        user = User(
            full_name=full_name,
            email=email,
            password_hash=hash_password("password123"),
            role=role,
            district=district,
            state="Maharashtra",
        )
        session.add(user)
        await session.flush()
        token = await create_session(session, user)
        return user.id, token


def _authed_client(token: str) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    )


@pytest.fixture
async def victim() -> tuple[str, str]:
    return await create_user("victim", "victim@example.com", "Sunita Kamble")


@pytest.fixture
async def officer() -> tuple[str, str]:
    return await create_user("officer", "officer@example.com", "Rahul Patil")


@pytest.fixture
async def victim_client(victim) -> AsyncGenerator[AsyncClient, None]:
    async with _authed_client(victim[1]) as ac:
        yield ac


@pytest.fixture
async def other_victim_client() -> AsyncGenerator[AsyncClient, None]:
    _, token = await create_user("victim", "other@example.com", "Anil Jadhav")
    async with _authed_client(token) as ac:
        yield ac


@pytest.fixture
async def officer_client(officer) -> AsyncGenerator[AsyncClient, None]:
    async with _authed_client(officer[1]) as ac:
        yield ac


@pytest.fixture
async def admin_client() -> AsyncGenerator[AsyncClient, None]:
    _, token = await create_user("admin", "admin@example.com", "District Collector")
    async with _authed_client(token) as ac:
        yield ac


# =============================================================================
# Sample Data
# =============================================================================

GRIEVANCE_PAYLOAD = {
    "applicantName": "Sunita Kamble",
    "applicantPhone": "9876543210",
    "casteCategory": "SC",
    "address": "Ward 4, Hadapsar",
    "district": "Pune",
    "state": "Maharashtra",
    "incidentDate": "2024-09-12T10:30:00Z",
    "incidentDescription": "Assaulted and abused by caste name near the village well.",
    "firNumber": "112/2024",
    "policeStation": "Hadapsar",
}


@pytest.fixture
async def grievance(victim_client: AsyncClient) -> dict:
    """An atrocity grievance filed by the victim fixture."""
    response = await victim_client.post("/api/grievances", json=GRIEVANCE_PAYLOAD)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
async def approved_grievance(grievance: dict, officer_client: AsyncClient) -> dict:
    """The grievance fixture approved for Rs 100,000."""
    response = await officer_client.post(
        f"/api/grievances/{grievance['id']}/approve",
        json={"approvedAmount": 100_000, "remarks": "Documents in order"},
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


FIR_TEXT = (
    "first information report (under section 154 cr.p.c) form if1 integrated form. "
    "district pune p.s. hadapsar f.i.r. no 112/2024. complainant / information: "
    "sunita kamble. occurrence of offence near village well. accused persons named. "
    "act sc/st (prevention of atrocities) act sections 3(1)(r). police station hadapsar."
)

AADHAAR_TEXT = (
    "government of india unique identification authority of india aadhaar "
    "sunita kamble dob: 01/01/1990 female address: ward 4 hadapsar pune 411028 "
    "1234 5678 9012 vid: 9100 0000 0000 0000"
)

FIR_PDF_LINES = (
    "FIRST INFORMATION REPORT (Under Section 154 Cr.P.C)",
    "District Pune P.S. Hadapsar F.I.R. No 112/2024",
    "Complainant / Information: Sunita Kamble",
    "Occurrence of offence near village well. Accused persons named.",
    "Act SC/ST (Prevention of Atrocities) Act Sections 3(1)(r). Police Station Hadapsar",
)


def make_text_pdf(*lines: str) -> bytes:
    """A one-page PDF whose text layer holds the given lines in Helvetica."""
    def escape(line: str) -> str:
        return line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")

    text_ops = " T* ".join(f"({escape(line)}) Tj" for line in lines)
    stream = f"BT /F1 11 Tf 14 TL 50 750 Td {text_ops} ET".encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)
