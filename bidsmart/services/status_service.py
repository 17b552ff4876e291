"""Read-only extraction status views polled by the UI."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.config import settings
from bidsmart.core.exceptions import NotFoundError
from bidsmart.database.models import DocumentRecord, DocumentStatus, ProjectStatus
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.schemas.status import DocumentStatusResponse, ProjectStatusResponse
from bidsmart.services.aggregator import evaluate_counts
from bidsmart.services.project_service import ProjectService

PROGRESS_BY_STATUS = {
    DocumentStatus.UPLOADED: 0,
    DocumentStatus.PROCESSING: 50,
    DocumentStatus.REVIEW_NEEDED: 90,
    DocumentStatus.EXTRACTED: 100,
    DocumentStatus.VERIFIED: 100,
    DocumentStatus.FAILED: 0,
}

READY_STATUSES = {
    ProjectStatus.COMPARING,
    ProjectStatus.DECIDED,
    ProjectStatus.IN_PROGRESS,
    ProjectStatus.COMPLETED,
}


def progress_for(status: str) -> int:
    return PROGRESS_BY_STATUS.get(status, 0)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stalled(document: DocumentRecord, now: Optional[datetime] = None) -> bool:
    """A document is stalled when it has been processing longer than the configured limit."""
    if document.status != DocumentStatus.PROCESSING or document.processing_started_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    limit = timedelta(seconds=settings.processing_stale_after_seconds)
    return now - _as_utc(document.processing_started_at) > limit


class StatusService:
    """No method here writes to the database."""

    def __init__(self, session: AsyncSession):
        self.documents = DocumentRepository(session)
        self.bids = BidRepository(session)
        self.project_service = ProjectService(session)

    def _document_view(self, document: DocumentRecord, bid_id: Optional[UUID], now: datetime) -> DocumentStatusResponse:
        return DocumentStatusResponse(
            document_id=document.id,
            file_name=document.file_name,
            status=document.status,
            progress=progress_for(document.status),
            confidence=document.extraction_confidence,
            bid_id=bid_id,
            error=document.error_message,
            processing_started_at=document.processing_started_at,
            processing_completed_at=document.processing_completed_at,
            retry_count=document.retry_count,
            stalled=is_stalled(document, now),
        )

    async def get_document_status(self, document_id: UUID, user_id: UUID) -> DocumentStatusResponse:
        document = await self.documents.get_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        await self.project_service.get_owned_project(document.project_id, user_id)

        bids = await self.bids.get_by_document_ids([document_id])
        bid = bids.get(document_id)
        return self._document_view(document, bid.id if bid else None, datetime.now(timezone.utc))

    async def get_project_status(self, project_id: UUID, user_id: UUID) -> ProjectStatusResponse:
        project = await self.project_service.get_owned_project(project_id, user_id)
        documents = await self.documents.list_by_project(project_id)
        bids = await self.bids.get_by_document_ids([d.id for d in documents])
        now = datetime.now(timezone.utc)

        views = [
            self._document_view(d, bids[d.id].id if d.id in bids else None, now)
            for d in documents
        ]
        counts: dict = {}
        for d in documents:
            counts[d.status] = counts.get(d.status, 0) + 1
        all_terminal, successful = evaluate_counts(counts)

        return ProjectStatusResponse(
            project_id=project.id,
            status=project.status,
            ready_to_compare=project.status in READY_STATUSES,
            all_terminal=all_terminal,
            document_count=len(documents),
            successful_count=successful,
            failed_count=counts.get(DocumentStatus.FAILED, 0),
            status_counts=counts,
            stalled_document_ids=[v.document_id for v in views if v.stalled],
            notification_sent=project.notification_sent_at is not None,
            documents=views,
        )
