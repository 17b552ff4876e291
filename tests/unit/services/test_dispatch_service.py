import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from bidsmart.core.config import settings
from bidsmart.core.exceptions import APIClientError, AuthorizationError, DispatchError, ValidationError
from bidsmart.core.signing import verify_signature
from bidsmart.database.models import (
    Bid,
    BidStatus,
    DocumentRecord,
    DocumentStatus,
    ExtractionBatch,
    Project,
    ProjectStatus,
)
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.schemas.dispatch import UserPriorities
from bidsmart.services.dispatch_service import DispatchService

UPLOADED = [DocumentStatus.UPLOADED, DocumentStatus.UPLOADED]


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.get_signed_url = AsyncMock(side_effect=lambda bucket, path, expires_in: f"https://signed.test/{path}?token=t")
    return storage


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.start_run = AsyncMock(return_value="run-42")
    return client


@pytest.fixture
def service(db_session, mock_storage, mock_client):
    return DispatchService(db_session, storage_service=mock_storage, extraction_client=mock_client)


async def load(session, model, id):
    stmt = select(model).where(model.id == id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_dispatch_marks_batch_processing(db_session, make_project, service, mock_client):
    seeded = await make_project(doc_statuses=UPLOADED, project_status=ProjectStatus.COLLECTING_BIDS, request_id=None)

    response = await service.execute(
        seeded.project_id, seeded.user_id, seeded.document_ids,
        {"price": 5, "efficiency": 4, "project_details": "Two-story house, 1950s ductwork"},
    )

    assert response.workflow_run_id == "run-42"
    assert response.document_count == 2
    mock_client.start_run.assert_awaited_once()

    batch = (await db_session.execute(
        select(ExtractionBatch)
        .where(ExtractionBatch.request_id == response.request_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert batch.status == "dispatched"
    assert batch.document_ids == [str(d) for d in seeded.document_ids]
    assert batch.priorities["price"] == 5

    for document_id, bid_id in zip(seeded.document_ids, seeded.bid_ids):
        document = await load(db_session, DocumentRecord, document_id)
        assert document.status == DocumentStatus.PROCESSING
        assert document.batch_request_id == response.request_id
        assert document.processing_started_at is not None
        bid = await load(db_session, Bid, bid_id)
        assert bid.status == BidStatus.PROCESSING

    project = await load(db_session, Project, seeded.project_id)
    assert project.status == ProjectStatus.ANALYZING
    assert project.analysis_queued_at is not None
    assert project.rerun_count == 0


@pytest.mark.asyncio
async def test_dispatch_inputs_carry_signed_urls_priorities_and_signature(db_session, make_project, service, mock_client):
    seeded = await make_project(doc_statuses=UPLOADED, request_id=None)

    response = await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)

    inputs = mock_client.start_run.call_args.args[0]
    urls = json.loads(inputs["document_urls"])
    assert len(urls) == 2 and all(url.startswith("https://signed.test/") for url in urls)
    assert json.loads(inputs["user_priorities"]) == UserPriorities().weights()
    assert inputs["project_id"] == str(seeded.project_id)
    assert inputs["request_id"] == response.request_id
    assert inputs["callback_url"].endswith("/api/v1/callbacks/extraction")
    assert verify_signature(
        inputs["request_id"], inputs["timestamp"], inputs["signature"], settings.callback_secret
    )


@pytest.mark.asyncio
async def test_rejected_dispatch_reverts_state(db_session, make_project, service, mock_client):
    seeded = await make_project(doc_statuses=UPLOADED, project_status=ProjectStatus.COLLECTING_BIDS, request_id=None)
    mock_client.start_run = AsyncMock(side_effect=APIClientError("Extraction service returned 503: busy"))

    with pytest.raises(DispatchError):
        await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)

    for document_id, bid_id in zip(seeded.document_ids, seeded.bid_ids):
        document = await load(db_session, DocumentRecord, document_id)
        assert document.status == DocumentStatus.UPLOADED
        assert "503" in document.error_message
        assert document.retry_count == 1
        bid = await load(db_session, Bid, bid_id)
        assert bid.status == BidStatus.PENDING

    project = await load(db_session, Project, seeded.project_id)
    assert project.status == ProjectStatus.COLLECTING_BIDS
    batch = (await db_session.execute(
        select(ExtractionBatch).execution_options(populate_existing=True)
    )).scalar_one()
    assert batch.status == "dispatch_failed"


@pytest.mark.asyncio
async def test_rerun_increments_counter(db_session, make_project, service):
    seeded = await make_project(doc_statuses=UPLOADED, request_id=None)
    await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)

    documents = DocumentRepository(db_session)
    for document_id in seeded.document_ids:
        await documents.record_result(document_id, DocumentStatus.EXTRACTED, confidence="high")
    await db_session.commit()

    await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)

    project = await load(db_session, Project, seeded.project_id)
    assert project.rerun_count == 1


@pytest.mark.asyncio
async def test_dispatch_for_foreign_project_is_forbidden(db_session, make_project, service, mock_client):
    owner = await make_project(doc_statuses=UPLOADED, request_id=None)
    stranger = await make_project(doc_statuses=[], request_id=None)

    with pytest.raises(AuthorizationError):
        await service.execute(owner.project_id, stranger.user_id, owner.document_ids, None)
    mock_client.start_run.assert_not_awaited()


@pytest.mark.asyncio
async def test_documents_must_belong_to_project(db_session, make_project, service, mock_client):
    mine = await make_project(doc_statuses=UPLOADED, request_id=None)
    other = await make_project(doc_statuses=UPLOADED, request_id=None)

    with pytest.raises(ValidationError, match="do not belong"):
        await service.execute(mine.project_id, mine.user_id, [mine.document_ids[0], other.document_ids[0]], None)
    mock_client.start_run.assert_not_awaited()


@pytest.mark.asyncio
async def test_documents_already_processing_are_rejected(db_session, make_project, service):
    seeded = await make_project()

    with pytest.raises(ValidationError, match="already processing"):
        await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)


@pytest.mark.asyncio
async def test_documents_claimed_between_check_and_dispatch_are_rejected(
    db_session, make_project, service, mock_storage, mock_client
):
    seeded = await make_project(doc_statuses=UPLOADED, request_id=None)
    contested = seeded.document_ids[1]

    async def signed_url_while_other_batch_claims(bucket, path, expires_in):
        await db_session.execute(
            update(DocumentRecord)
            .where(DocumentRecord.id == contested)
            .values(status=DocumentStatus.PROCESSING, batch_request_id="req-other")
        )
        await db_session.commit()
        return f"https://signed.test/{path}?token=t"

    mock_storage.get_signed_url = AsyncMock(side_effect=signed_url_while_other_batch_claims)

    with pytest.raises(ValidationError, match="already processing"):
        await service.execute(seeded.project_id, seeded.user_id, seeded.document_ids, None)

    mock_client.start_run.assert_not_awaited()
    assert (await db_session.execute(select(ExtractionBatch))).scalars().all() == []
    first = await load(db_session, DocumentRecord, seeded.document_ids[0])
    assert first.status == DocumentStatus.UPLOADED
    other = await load(db_session, DocumentRecord, contested)
    assert other.batch_request_id == "req-other"


@pytest.mark.asyncio
async def test_input_validation(db_session, make_project, service):
    seeded = await make_project(doc_statuses=UPLOADED, request_id=None)
    doc = seeded.document_ids[0]

    with pytest.raises(ValidationError):
        await service.execute(seeded.project_id, seeded.user_id, [], None)
    with pytest.raises(ValidationError):
        await service.execute(seeded.project_id, seeded.user_id, [doc, doc], None)
    with pytest.raises(ValidationError, match="priorities"):
        await service.execute(seeded.project_id, seeded.user_id, [doc], {"price": 9})
    with pytest.raises(ValidationError):
        await service.execute(seeded.project_id, seeded.user_id, [uuid4()], None)
