from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from bidsmart.core.exceptions import AppError, ValidationError
from bidsmart.database.models import Bid, BidStatus, DocumentRecord, DocumentStatus, Project, ProjectStatus
from bidsmart.services.upload_service import UploadService


def make_file(name="bid.pdf", content_type="application/pdf", size=1024):
    return MagicMock(filename=name, content_type=content_type, size=size)


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.upload_file = AsyncMock(return_value={"Key": "bid-pdfs/path.pdf"})
    return storage


@pytest.mark.asyncio
async def test_upload_registers_documents_and_bid_stubs(db_session, make_project, mock_storage):
    seeded = await make_project(doc_statuses=[], project_status=ProjectStatus.DRAFT, request_id=None)
    service = UploadService(db_session, storage_service=mock_storage)

    response = await service.execute(seeded.project_id, seeded.user_id, [make_file("a.pdf"), make_file("b.pdf")])

    assert [h.file_name for h in response.documents] == ["a.pdf", "b.pdf"]
    assert mock_storage.upload_file.await_count == 2
    path = mock_storage.upload_file.call_args.args[2]
    assert path.startswith(f"{seeded.user_id}/{seeded.project_id}/") and path.endswith(".pdf")

    for handle in response.documents:
        document = (await db_session.execute(
            select(DocumentRecord).where(DocumentRecord.id == handle.document_id)
        )).scalar_one()
        assert document.status == DocumentStatus.UPLOADED
        bid = (await db_session.execute(select(Bid).where(Bid.id == handle.bid_id))).scalar_one()
        assert bid.status == BidStatus.PENDING
        assert bid.contractor_name is None
        assert bid.document_id == handle.document_id

    project = (await db_session.execute(
        select(Project).where(Project.id == seeded.project_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert project.status == ProjectStatus.COLLECTING_BIDS


@pytest.mark.asyncio
async def test_non_pdf_is_rejected(db_session, make_project, mock_storage):
    seeded = await make_project(doc_statuses=[], request_id=None)
    service = UploadService(db_session, storage_service=mock_storage)

    with pytest.raises(ValidationError, match="Only PDF"):
        await service.execute(seeded.project_id, seeded.user_id, [make_file("bid.docx", content_type="application/msword")])
    mock_storage.upload_file.assert_not_awaited()


@pytest.mark.asyncio
async def test_oversized_file_is_rejected(db_session, make_project, mock_storage):
    seeded = await make_project(doc_statuses=[], request_id=None)
    service = UploadService(db_session, storage_service=mock_storage)

    with pytest.raises(ValidationError, match="exceeds"):
        await service.execute(seeded.project_id, seeded.user_id, [make_file(size=30 * 1024 * 1024)])


@pytest.mark.asyncio
async def test_storage_failure_leaves_no_document(db_session, make_project, mock_storage):
    seeded = await make_project(doc_statuses=[], request_id=None)
    mock_storage.upload_file = AsyncMock(side_effect=AppError("Upload failed: Bad Request"))
    service = UploadService(db_session, storage_service=mock_storage)

    with pytest.raises(AppError, match="Upload failed"):
        await service.execute(seeded.project_id, seeded.user_id, [make_file()])

    documents = (await db_session.execute(select(DocumentRecord))).scalars().all()
    assert documents == []
