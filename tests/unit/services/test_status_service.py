from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import update

from bidsmart.core.exceptions import AuthorizationError, NotFoundError
from bidsmart.database.models import DocumentRecord, DocumentStatus, ProjectStatus
from bidsmart.services.status_service import StatusService, is_stalled, progress_for


def test_progress_bands():
    assert progress_for(DocumentStatus.UPLOADED) == 0
    assert progress_for(DocumentStatus.PROCESSING) == 50
    assert progress_for(DocumentStatus.REVIEW_NEEDED) == 90
    assert progress_for(DocumentStatus.EXTRACTED) == 100
    assert progress_for(DocumentStatus.FAILED) == 0


def test_is_stalled_only_for_old_processing_documents():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    old = DocumentRecord(status=DocumentStatus.PROCESSING, processing_started_at=now - timedelta(hours=1))
    recent = DocumentRecord(status=DocumentStatus.PROCESSING, processing_started_at=now - timedelta(minutes=5))
    naive_old = DocumentRecord(status=DocumentStatus.PROCESSING, processing_started_at=datetime(2026, 3, 1, 11, 0))
    done = DocumentRecord(status=DocumentStatus.EXTRACTED, processing_started_at=now - timedelta(hours=1))

    assert is_stalled(old, now) is True
    assert is_stalled(recent, now) is False
    assert is_stalled(naive_old, now) is True
    assert is_stalled(done, now) is False


@pytest.mark.asyncio
async def test_document_status_view(db_session, make_project):
    seeded = await make_project()
    service = StatusService(db_session)

    view = await service.get_document_status(seeded.document_ids[0], seeded.user_id)

    assert view.status == DocumentStatus.PROCESSING
    assert view.progress == 50
    assert view.bid_id == seeded.bid_ids[0]
    assert view.stalled is False


@pytest.mark.asyncio
async def test_document_status_enforces_ownership(db_session, make_project):
    seeded = await make_project()
    stranger = await make_project(doc_statuses=[], request_id=None)
    service = StatusService(db_session)

    with pytest.raises(AuthorizationError):
        await service.get_document_status(seeded.document_ids[0], stranger.user_id)
    with pytest.raises(NotFoundError):
        await service.get_document_status(uuid4(), seeded.user_id)


@pytest.mark.asyncio
async def test_project_status_aggregates_documents(db_session, make_project):
    seeded = await make_project(
        doc_statuses=[DocumentStatus.EXTRACTED, DocumentStatus.FAILED, DocumentStatus.PROCESSING]
    )
    stalled_id = seeded.document_ids[2]
    await db_session.execute(
        update(DocumentRecord)
        .where(DocumentRecord.id == stalled_id)
        .values(processing_started_at=datetime.now(timezone.utc) - timedelta(hours=2))
    )
    await db_session.commit()

    view = await StatusService(db_session).get_project_status(seeded.project_id, seeded.user_id)

    assert view.status == ProjectStatus.ANALYZING
    assert view.document_count == 3
    assert view.successful_count == 1
    assert view.failed_count == 1
    assert view.all_terminal is False
    assert view.ready_to_compare is False
    assert view.stalled_document_ids == [stalled_id]
    assert view.notification_sent is False


@pytest.mark.asyncio
async def test_project_status_ready_when_comparing(db_session, make_project):
    seeded = await make_project(
        doc_statuses=[DocumentStatus.EXTRACTED, DocumentStatus.REVIEW_NEEDED],
        project_status=ProjectStatus.COMPARING,
    )

    view = await StatusService(db_session).get_project_status(seeded.project_id, seeded.user_id)

    assert view.ready_to_compare is True
    assert view.all_terminal is True
    assert sorted(d.progress for d in view.documents) == [90, 100]
