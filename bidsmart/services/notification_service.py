"""Completion notification gate: at most one email per project."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.exceptions import AppError, NotFoundError
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.services.base_service import BaseService
from bidsmart.services.email_service import EmailService
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

SKIP_NOT_OPTED_IN = "User did not opt in for notifications"
SKIP_NO_EMAIL = "No notification email provided"
SKIP_ALREADY_SENT = "Notification already sent"


@dataclass
class NotificationResult:
    status: str  # sent | skipped | failed
    reason: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class NotificationGate(BaseService):
    """Decides whether the completion email may be sent and sends it once.

    The claim is a conditional update on ``notification_sent_at IS NULL``;
    only the caller whose update touched a row sends. A failed send keeps
    the claim, so delivery is at most once.
    """

    def __init__(self, session: AsyncSession, email_service: Optional[EmailService] = None):
        super().__init__()
        self.session = session
        self.projects = ProjectRepository(session)
        self.email_service = email_service or EmailService()

    async def run(self, project_id: UUID) -> NotificationResult:
        project = await self.projects.get_fresh(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        if not project.notify_on_completion:
            return NotificationResult(status="skipped", reason=SKIP_NOT_OPTED_IN)
        if not project.notification_email:
            return NotificationResult(status="skipped", reason=SKIP_NO_EMAIL)
        if project.notification_sent_at is not None:
            return NotificationResult(status="skipped", reason=SKIP_ALREADY_SENT)

        claimed = await self.projects.claim_notification(project_id, datetime.now(timezone.utc))
        await self.session.commit()
        if not claimed:
            LOGGER.info("Notification claim lost to a concurrent caller", extra={"project_id": str(project_id)})
            return NotificationResult(status="skipped", reason=SKIP_ALREADY_SENT)

        email = project.notification_email
        try:
            message_id = await self.email_service.send_completion_email(
                email, project.project_name, str(project_id)
            )
        except AppError as e:
            LOGGER.error(
                "Completion email failed; claim kept",
                extra={"project_id": str(project_id), "error": str(e)}
            )
            await self.projects.record_notification_error(project_id, str(e))
            await self.session.commit()
            return NotificationResult(status="failed", reason=str(e))

        await self.projects.record_notification_error(project_id, None)
        await self.session.commit()
        return NotificationResult(status="sent", message_id=message_id)
