"""Repository for uploaded bid documents (pdf_uploads)."""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import DocumentRecord, DocumentStatus
from bidsmart.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[DocumentRecord]):
    """Data access for DocumentRecord rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentRecord)

    async def create_document(
        self,
        project_id: UUID,
        file_name: str,
        storage_path: str,
        file_size_bytes: Optional[int] = None,
        mime_type: Optional[str] = "application/pdf",
    ) -> DocumentRecord:
        """Register an uploaded file in the uploaded state.

        Args:
            project_id: Owning project
            file_name: Original file name
            storage_path: Object path inside the storage bucket
            file_size_bytes: Size of the upload if known
            mime_type: Content type of the upload

        Returns:
            The flushed DocumentRecord
        """
        return await self.create(
            project_id=project_id,
            file_name=file_name,
            storage_path=storage_path,
            file_size_bytes=file_size_bytes,
            mime_type=mime_type,
            status=DocumentStatus.UPLOADED,
        )

    async def get_many(self, document_ids: Sequence[UUID]) -> List[DocumentRecord]:
        if not document_ids:
            return []
        stmt = select(DocumentRecord).where(DocumentRecord.id.in_(list(document_ids)))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_project(self, project_id: UUID) -> List[DocumentRecord]:
        """All documents of a project, freshly loaded, oldest upload first."""
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.project_id == project_id)
            .order_by(DocumentRecord.uploaded_at, DocumentRecord.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def status_counts(self, project_id: UUID) -> Dict[str, int]:
        stmt = select(DocumentRecord.status).where(DocumentRecord.project_id == project_id)
        result = await self.session.execute(stmt)
        return dict(Counter(result.scalars().all()))

    async def claim_for_processing(self, document_ids: Sequence[UUID], request_id: str) -> int:
        """Move the documents to ``processing`` unless already there.

        Returns:
            Number of documents claimed; fewer than requested means another
            batch got some of them first
        """
        now = datetime.now(timezone.utc)
        stmt = (
            update(DocumentRecord)
            .where(
                DocumentRecord.id.in_(list(document_ids)),
                DocumentRecord.status != DocumentStatus.PROCESSING,
            )
            .values(
                status=DocumentStatus.PROCESSING,
                batch_request_id=request_id,
                processing_started_at=now,
                processing_completed_at=None,
                error_message=None,
                updated_at=now,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def revert_to_uploaded(self, document_ids: Sequence[UUID], error_message: str) -> None:
        """Undo claim_for_processing after the extraction service refused the batch."""
        stmt = (
            update(DocumentRecord)
            .where(DocumentRecord.id.in_(list(document_ids)))
            .values(
                status=DocumentStatus.UPLOADED,
                processing_started_at=None,
                error_message=error_message,
                retry_count=DocumentRecord.retry_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        await self.session.execute(stmt)

    async def record_result(
        self,
        document_id: UUID,
        status: str,
        confidence: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Store the outcome of a callback for one document."""
        try:
            now = datetime.now(timezone.utc)
            stmt = (
                update(DocumentRecord)
                .where(DocumentRecord.id == document_id)
                .values(
                    status=status,
                    extraction_confidence=confidence,
                    error_message=error_message,
                    processing_completed_at=now,
                    updated_at=now,
                )
            )
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error recording result for document {document_id}: {str(e)}",
                exc_info=True
            )
            raise
