"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio

# Set required environment variables for testing BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("USE_LOCAL_DB", "true")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
os.environ.setdefault("EXTRACTION_API_ENDPOINT", "https://extraction.test/v1/runs")
os.environ.setdefault("EXTRACTION_API_KEY", "test-extraction-key")
os.environ.setdefault("EXTRACTION_WORKFLOW_ID", "wf-test")
os.environ.setdefault("EXTRACTION_CALLBACK_SECRET", "test-callback-secret")
os.environ.setdefault("RESEND_API_KEY", "test-resend-key")

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bidsmart.core.config import settings
from bidsmart.core.database import Base
from bidsmart.core.signing import sign, utc_timestamp
from bidsmart.database import models  # noqa: F401
from bidsmart.database.models import (
    Bid,
    BidStatus,
    DocumentRecord,
    DocumentStatus,
    ExtractionBatch,
    BatchStatus,
    Project,
    ProjectStatus,
    User,
)
from bidsmart.main import app


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncSession:
    maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def callback_secret() -> str:
    return settings.callback_secret


@pytest.fixture
def mock_email_service() -> MagicMock:
    service = MagicMock()
    service.send_completion_email = AsyncMock(return_value="msg_123")
    return service


@pytest.fixture
def make_project(db_session):
    """Seed a user, a project, its documents with bid stubs and optionally a batch.

    Returns plain ids so tests never touch ORM state expired by a rollback.
    """

    async def _make(
        doc_statuses: Optional[List[str]] = None,
        project_status: str = ProjectStatus.ANALYZING,
        request_id: Optional[str] = "req-1",
        notify_on_completion: bool = False,
        notification_email: Optional[str] = None,
        user_id=None,
    ) -> SimpleNamespace:
        if doc_statuses is None:
            doc_statuses = [DocumentStatus.PROCESSING, DocumentStatus.PROCESSING]

        if user_id is None:
            user = User(supabase_user_id=str(uuid4()), email="homeowner@example.com")
            db_session.add(user)
            await db_session.flush()
            user_id = user.id

        project = Project(
            user_id=user_id,
            project_name="Maple Street Heat Pump",
            status=project_status,
            notify_on_completion=notify_on_completion,
            notification_email=notification_email,
        )
        db_session.add(project)
        await db_session.flush()
        project_id = project.id

        document_ids, bid_ids = [], []
        for index, doc_status in enumerate(doc_statuses):
            processing = doc_status == DocumentStatus.PROCESSING
            document = DocumentRecord(
                project_id=project_id,
                file_name=f"bid-{index + 1}.pdf",
                storage_path=f"{user_id}/{project_id}/bid-{index + 1}.pdf",
                status=doc_status,
                batch_request_id=request_id if processing else None,
                processing_started_at=datetime.now(timezone.utc) if processing else None,
            )
            db_session.add(document)
            await db_session.flush()
            bid = Bid(
                project_id=project_id,
                document_id=document.id,
                request_id=request_id if processing else None,
                status=BidStatus.PROCESSING if processing else BidStatus.PENDING,
            )
            db_session.add(bid)
            await db_session.flush()
            document_ids.append(document.id)
            bid_ids.append(bid.id)

        if request_id:
            db_session.add(ExtractionBatch(
                request_id=request_id,
                project_id=project_id,
                document_ids=[str(d) for d in document_ids],
                status=BatchStatus.DISPATCHED,
            ))

        await db_session.commit()
        return SimpleNamespace(
            user_id=user_id,
            project_id=project_id,
            document_ids=document_ids,
            bid_ids=bid_ids,
            request_id=request_id,
        )

    return _make


@pytest.fixture
def signed_callback(callback_secret):
    """Build a correctly signed callback body around the given payload."""

    def _build(request_id: str, timestamp: Optional[str] = None, secret: Optional[str] = None, **payload) -> dict:
        timestamp = timestamp or utc_timestamp()
        body = {
            "request_id": request_id,
            "timestamp": timestamp,
            "signature": sign(request_id, timestamp, secret or callback_secret),
            "status": "success",
        }
        body.update(payload)
        return body

    return _build


@pytest.fixture
def sample_result():
    """Per-document extraction result as the service reports it."""

    def _result(document_id, confidence=95, status="success", company="Comfort Air HVAC") -> dict:
        return {
            "document_id": str(document_id),
            "status": status,
            "overall_confidence": confidence,
            "contractor_info": {
                "company_name": company,
                "phone": "555-0100",
                "license_number": "C20-123456",
                "license_state": "CA",
            },
            "pricing": {
                "total_amount": 18500.0,
                "equipment_cost": 11000.0,
                "labor_cost": 6000.0,
                "rebates_mentioned": [
                    {"name": "TECH Clean California", "amount": 3000},
                    {"name": "Utility rebate", "amount": 500},
                ],
            },
            "warranty": {"labor_warranty_years": 10, "equipment_warranty_years": 10},
            "equipment": [
                {"equipment_type": "outdoor_unit", "brand": "Mitsubishi", "model_number": "PUZ-A36", "stages": "variable", "refrigerant": "R-410A", "energy_star": True},
                {"equipment_type": "air_handler", "brand": "Mitsubishi", "model_number": "PVA-A36"},
            ],
            "line_items": [
                {"item_type": "labor", "description": "Install", "total_price": 6000},
                {"item_type": "crane rental", "description": "Crane", "total_price": 400},
            ],
            "scope_of_work": {"summary": "Replace furnace with heat pump", "permit_included": True, "inclusions": ["Permit"]},
            "extraction_notes": [{"type": "warning", "message": "Total not itemized"}],
        }

    return _result


@pytest.fixture
def sample_pdf_content() -> bytes:
    """Minimal valid PDF header."""
    return b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<\n/Type /Catalog\n/Pages 2 0 R\n>>\nendobj\n"
