"""Repository for bids and their child rows (scope, contractor, equipment)."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import (
    Bid,
    BidContractor,
    BidEquipment,
    BidScope,
    BidStatus,
)
from bidsmart.repositories.base_repository import BaseRepository


class BidRepository(BaseRepository[Bid]):
    """Data access for Bid rows and the normalized entities hanging off them."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Bid)

    async def create_stub(self, project_id: UUID, document_id: UUID) -> Bid:
        """Placeholder bid created at upload time, before any extraction."""
        return await self.create(
            project_id=project_id,
            document_id=document_id,
            status=BidStatus.PENDING,
            contractor_name=None,
            processing_attempts=0,
        )

    async def get_by_document_ids(self, document_ids: Sequence[UUID]) -> Dict[UUID, Bid]:
        if not document_ids:
            return {}
        stmt = select(Bid).where(Bid.document_id.in_(list(document_ids)))
        result = await self.session.execute(stmt)
        return {bid.document_id: bid for bid in result.scalars().all()}

    async def lock(self, bid_id: UUID) -> Optional[Bid]:
        """Load a bid with a row lock held until the transaction ends.

        Callbacks for different bids never contend; duplicate deliveries
        for the same bid are serialized here.
        """
        stmt = (
            select(Bid)
            .where(Bid.id == bid_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_processing(self, document_ids: Sequence[UUID], request_id: str) -> None:
        stmt = (
            update(Bid)
            .where(Bid.document_id.in_(list(document_ids)))
            .values(status=BidStatus.PROCESSING, request_id=request_id, updated_at=datetime.now(timezone.utc))
        )
        await self.session.execute(stmt)

    async def revert_to_pending(self, document_ids: Sequence[UUID]) -> None:
        stmt = (
            update(Bid)
            .where(Bid.document_id.in_(list(document_ids)), Bid.status == BidStatus.PROCESSING)
            .values(status=BidStatus.PENDING, updated_at=datetime.now(timezone.utc))
        )
        await self.session.execute(stmt)

    async def mark_completed(
        self,
        bid_id: UUID,
        contractor_name: str,
        confidence: str,
    ) -> None:
        """Set the bid header from a successful result and count the attempt."""
        stmt = (
            update(Bid)
            .where(Bid.id == bid_id)
            .values(
                status=BidStatus.COMPLETED,
                contractor_name=contractor_name,
                extraction_confidence=confidence,
                processing_attempts=Bid.processing_attempts + 1,
                last_error=None,
                updated_at=datetime.now(timezone.utc),
            )
        )
        await self.session.execute(stmt)

    async def mark_failed(self, bid_id: UUID, error: str) -> None:
        """Converge a bid to failed and count the attempt.

        The increment happens in SQL so concurrent deliveries never lose
        an attempt.
        """
        stmt = (
            update(Bid)
            .where(Bid.id == bid_id)
            .values(
                status=BidStatus.FAILED,
                last_error=error,
                processing_attempts=Bid.processing_attempts + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        await self.session.execute(stmt)

    async def _upsert_by_bid(self, model: Any, bid_id: UUID, values: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        row = {**values, "bid_id": bid_id}
        stmt = self.insert_stmt(model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.bid_id],
            set_={**values, "updated_at": now},
        )
        await self.session.execute(stmt)

    async def upsert_scope(self, bid_id: UUID, values: Dict[str, Any]) -> None:
        """Insert or overwrite the single BidScope row of a bid."""
        try:
            await self._upsert_by_bid(BidScope, bid_id, values)
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting scope for bid {bid_id}: {str(e)}", exc_info=True)
            raise

    async def upsert_contractor(self, bid_id: UUID, values: Dict[str, Any]) -> None:
        """Insert or overwrite the single BidContractor row of a bid."""
        try:
            await self._upsert_by_bid(BidContractor, bid_id, values)
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting contractor for bid {bid_id}: {str(e)}", exc_info=True)
            raise

    async def replace_equipment(self, bid_id: UUID, rows: List[Dict[str, Any]]) -> int:
        """Delete every equipment row of the bid, then insert ``rows``.

        Equipment is always extracted as a whole list per document, so the
        new set replaces the old one instead of being merged into it.

        Returns:
            Number of rows inserted
        """
        try:
            await self.session.execute(delete(BidEquipment).where(BidEquipment.bid_id == bid_id))
            self.session.add_all(
                BidEquipment(bid_id=bid_id, line_order=index, **row)
                for index, row in enumerate(rows)
            )
            await self.session.flush()
            return len(rows)
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing equipment for bid {bid_id}: {str(e)}", exc_info=True)
            raise
