"""Repository for extraction batches."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import BatchStatus, ExtractionBatch
from bidsmart.repositories.base_repository import BaseRepository


class BatchRepository(BaseRepository[ExtractionBatch]):
    """Data access for ExtractionBatch rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractionBatch)

    async def get_by_request_id(self, request_id: str) -> Optional[ExtractionBatch]:
        stmt = select(ExtractionBatch).where(ExtractionBatch.request_id == request_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_dispatched_for_project(self, project_id: UUID) -> int:
        """Batches that actually reached the extraction service."""
        stmt = (
            select(func.count())
            .select_from(ExtractionBatch)
            .where(
                ExtractionBatch.project_id == project_id,
                ExtractionBatch.status != BatchStatus.DISPATCH_FAILED,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def set_status(self, request_id: str, status: str, **fields) -> None:
        stmt = (
            update(ExtractionBatch)
            .where(ExtractionBatch.request_id == request_id)
            .values(status=status, **fields)
        )
        await self.session.execute(stmt)

    async def record_callback(self, request_id: str, status: str) -> None:
        """Count a delivery against the batch and store its latest outcome."""
        stmt = (
            update(ExtractionBatch)
            .where(ExtractionBatch.request_id == request_id)
            .values(
                status=status,
                callback_count=ExtractionBatch.callback_count + 1,
                last_callback_at=datetime.now(timezone.utc),
            )
        )
        await self.session.execute(stmt)
