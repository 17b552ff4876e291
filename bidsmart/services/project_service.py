"""Project lifecycle operations owned by the homeowner."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.exceptions import AuthorizationError, NotFoundError
from bidsmart.database.models import Project, ProjectStatus
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProjectService:

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = ProjectRepository(session)

    async def get_owned_project(self, project_id: UUID, user_id: UUID) -> Project:
        """Load a project and check that ``user_id`` owns it.

        Raises:
            NotFoundError: No such project
            AuthorizationError: Project belongs to someone else
        """
        project = await self.repository.get_by_id(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        if project.user_id != user_id:
            LOGGER.warning(
                "Project access denied",
                extra={"project_id": str(project_id), "user_id": str(user_id)}
            )
            raise AuthorizationError("Project does not belong to the current user")
        return project

    async def create_project(
        self,
        user_id: UUID,
        project_name: Optional[str] = None,
        notification_email: Optional[str] = None,
        notify_on_completion: bool = False,
    ) -> Project:
        """Create a draft project for the user."""
        project = await self.repository.create(
            user_id=user_id,
            project_name=project_name or "My Heat Pump Project",
            status=ProjectStatus.DRAFT,
            notification_email=notification_email,
            notify_on_completion=notify_on_completion,
        )
        await self.session.commit()
        LOGGER.info("Created draft project", extra={"project_id": str(project.id)})
        return project

    async def update_notification_preferences(
        self,
        project_id: UUID,
        user_id: UUID,
        notification_email: Optional[str],
        notify_on_completion: bool,
    ) -> Project:
        """Set the completion email opt-in. Never touches notification_sent_at."""
        project = await self.get_owned_project(project_id, user_id)
        project.notification_email = notification_email
        project.notify_on_completion = notify_on_completion
        await self.session.commit()
        return project
