"""Repository for the raw callback audit log."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import ExtractionLog
from bidsmart.repositories.base_repository import BaseRepository


class ExtractionLogRepository(BaseRepository[ExtractionLog]):

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractionLog)

    async def log_delivery(
        self,
        request_id: str,
        project_id: Optional[UUID],
        callback_status: Optional[str],
        raw_json: dict,
    ) -> ExtractionLog:
        return await self.create(
            request_id=request_id,
            project_id=project_id,
            callback_status=callback_status,
            raw_json=raw_json,
            parsed_successfully=False,
        )

    async def mark_processed(
        self,
        log_id: UUID,
        parsed_successfully: bool,
        parsing_errors: Optional[List[str]] = None,
        overall_confidence: Optional[float] = None,
    ) -> None:
        stmt = (
            update(ExtractionLog)
            .where(ExtractionLog.id == log_id)
            .values(
                parsed_successfully=parsed_successfully,
                parsing_errors=parsing_errors or None,
                overall_confidence=overall_confidence,
                processed_at=datetime.now(timezone.utc),
            )
        )
        await self.session.execute(stmt)
