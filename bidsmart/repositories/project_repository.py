"""Repository for projects and their notification flag."""

from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import Project
from bidsmart.repositories.base_repository import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Data access for Project rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Project)

    async def get_fresh(self, project_id: UUID) -> Optional[Project]:
        """Load a project bypassing any stale copy in the identity map."""
        stmt = (
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def transition_status(
        self,
        project_id: UUID,
        to_status: str,
        from_statuses: Iterable[str],
    ) -> bool:
        """Move a project to ``to_status`` only if it is currently in ``from_statuses``.

        Returns:
            True if this call performed the transition
        """
        try:
            stmt = (
                update(Project)
                .where(Project.id == project_id, Project.status.in_(list(from_statuses)))
                .values(status=to_status, updated_at=datetime.now(timezone.utc))
            )
            result = await self.session.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error transitioning project {project_id} to {to_status}: {str(e)}",
                exc_info=True
            )
            raise

    async def claim_notification(self, project_id: UUID, claimed_at: datetime) -> bool:
        """Set notification_sent_at if and only if it is still NULL.

        Exactly one concurrent caller sees a row count of 1 and wins the
        right to send.

        Args:
            project_id: Project to claim
            claimed_at: Timestamp to store

        Returns:
            True when this caller won the claim
        """
        try:
            stmt = (
                update(Project)
                .where(Project.id == project_id, Project.notification_sent_at.is_(None))
                .values(notification_sent_at=claimed_at)
            )
            result = await self.session.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error claiming notification for project {project_id}: {str(e)}",
                exc_info=True
            )
            raise

    async def record_notification_error(self, project_id: UUID, error: Optional[str]) -> None:
        stmt = (
            update(Project)
            .where(Project.id == project_id)
            .values(notification_last_error=error)
        )
        await self.session.execute(stmt)
