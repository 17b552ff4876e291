"""Batch aggregation: decides when a project's bids are comparable."""

from dataclasses import dataclass, field
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import DocumentStatus, ProjectStatus
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.services.notification_service import NotificationGate, NotificationResult
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

# A single successful bid is not a comparable set
MIN_COMPARABLE_BIDS = 2

READY_FROM_STATUSES = (ProjectStatus.COLLECTING_BIDS, ProjectStatus.ANALYZING)


@dataclass
class AggregationResult:
    project_id: UUID
    status_counts: Dict[str, int] = field(default_factory=dict)
    all_terminal: bool = False
    successful: int = 0
    ready_to_compare: bool = False
    transitioned: bool = False
    notification: Optional[NotificationResult] = None


def evaluate_counts(status_counts: Dict[str, int]) -> tuple:
    """Return (all_terminal, successful) for a project's document statuses."""
    total = sum(status_counts.values())
    terminal = sum(n for s, n in status_counts.items() if s in DocumentStatus.TERMINAL)
    successful = sum(n for s, n in status_counts.items() if s in DocumentStatus.SUCCESSFUL)
    return total > 0 and terminal == total, successful


class BatchAggregator:
    """Re-evaluates a project after each callback."""

    def __init__(self, session: AsyncSession, notification_gate: Optional[NotificationGate] = None):
        self.session = session
        self.documents = DocumentRepository(session)
        self.projects = ProjectRepository(session)
        self.notification_gate = notification_gate or NotificationGate(session)

    async def evaluate(self, project_id: UUID) -> AggregationResult:
        """Check the completion threshold and act on it.

        When every document is terminal and at least MIN_COMPARABLE_BIDS
        succeeded, the project moves to ``comparing`` and the notification
        gate is invoked. The gate is idempotent, so re-evaluations after
        the transition are harmless.
        """
        counts = await self.documents.status_counts(project_id)
        all_terminal, successful = evaluate_counts(counts)
        result = AggregationResult(
            project_id=project_id,
            status_counts=counts,
            all_terminal=all_terminal,
            successful=successful,
        )

        if not all_terminal:
            return result

        if successful < MIN_COMPARABLE_BIDS:
            LOGGER.info(
                "All documents terminal but too few successful bids to compare",
                extra={"project_id": str(project_id), "successful": successful}
            )
            return result

        result.ready_to_compare = True
        result.transitioned = await self.projects.transition_status(
            project_id, ProjectStatus.COMPARING, READY_FROM_STATUSES
        )
        await self.session.commit()

        if result.transitioned:
            LOGGER.info("Project ready to compare", extra={"project_id": str(project_id)})

        result.notification = await self.notification_gate.execute(project_id)
        return result
