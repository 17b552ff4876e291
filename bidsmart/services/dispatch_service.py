"""Batch dispatch: one outbound extraction request per set of documents."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID, uuid4

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.config import settings
from bidsmart.core.exceptions import (
    APIClientError,
    AppError,
    ConfigurationError,
    DispatchError,
    ValidationError,
)
from bidsmart.core.signing import sign, utc_timestamp
from bidsmart.database.models import BatchStatus, DocumentStatus, ProjectStatus
from bidsmart.repositories.batch_repository import BatchRepository
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.schemas.dispatch import DispatchResponse, UserPriorities
from bidsmart.services.base_service import BaseService
from bidsmart.services.extraction_client import ExtractionClient
from bidsmart.services.project_service import ProjectService
from bidsmart.services.storage_service import StorageService
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DispatchService(BaseService):
    """Validates a batch, marks it processing and submits it exactly once.

    If the extraction service refuses the run, documents go back to
    ``uploaded`` with the error recorded, bids back to ``pending``, the
    project back to its previous status, and the batch row is kept as
    ``dispatch_failed``.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage_service: Optional[StorageService] = None,
        extraction_client: Optional[ExtractionClient] = None,
    ):
        super().__init__()
        self.session = session
        self.storage = storage_service or StorageService()
        self.client = extraction_client or ExtractionClient()
        self.projects = ProjectRepository(session)
        self.project_service = ProjectService(session)
        self.documents = DocumentRepository(session)
        self.bids = BidRepository(session)
        self.batches = BatchRepository(session)

    def validate(
        self,
        project_id: UUID,
        user_id: UUID,
        document_ids: Sequence[UUID],
        priorities: Union[UserPriorities, Dict[str, Any], None] = None,
    ) -> None:
        if not document_ids:
            raise ValidationError("At least one document is required")
        if len(set(document_ids)) != len(document_ids):
            raise ValidationError("Duplicate document ids in batch")
        if not settings.callback_secret:
            raise ConfigurationError("Callback secret is not configured")

    @staticmethod
    def parse_priorities(priorities: Union[UserPriorities, Dict[str, Any], None]) -> UserPriorities:
        if priorities is None:
            return UserPriorities()
        if isinstance(priorities, UserPriorities):
            return priorities
        try:
            return UserPriorities.model_validate(priorities)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid priorities: {e.error_count()} errors", original_error=e)

    async def run(
        self,
        project_id: UUID,
        user_id: UUID,
        document_ids: Sequence[UUID],
        priorities: Union[UserPriorities, Dict[str, Any], None] = None,
    ) -> DispatchResponse:
        """Dispatch a batch.

        Args:
            project_id: Project the documents belong to
            user_id: Internal id of the requesting user
            document_ids: Document handles to analyze
            priorities: Homeowner priority weights

        Returns:
            The batch correlation id and run id

        Raises:
            AuthorizationError: Caller does not own the project
            ValidationError: Bad documents or priorities
            DispatchError: Extraction service refused the run
        """
        weights = self.parse_priorities(priorities)
        project = await self.project_service.get_owned_project(project_id, user_id)
        previous_status = project.status

        documents = await self.documents.get_many(document_ids)
        found = {doc.id: doc for doc in documents}
        missing = [str(d) for d in document_ids if d not in found or found[d].project_id != project_id]
        if missing:
            raise ValidationError(f"Documents do not belong to this project: {', '.join(missing)}")
        busy = [str(d) for d in document_ids if found[d].status == DocumentStatus.PROCESSING]
        if busy:
            raise ValidationError(f"Documents are already processing: {', '.join(busy)}")

        # Signed URLs first, so a storage failure changes no state
        document_urls: List[str] = []
        for document_id in document_ids:
            document_urls.append(await self.storage.get_signed_url(
                settings.supabase.storage_bucket,
                found[document_id].storage_path,
                expires_in=settings.supabase.signed_url_ttl_seconds,
            ))

        request_id = str(uuid4())
        is_rerun = await self.batches.count_dispatched_for_project(project_id) > 0

        claimed = await self.documents.claim_for_processing(document_ids, request_id)
        if claimed != len(document_ids):
            await self.session.rollback()
            LOGGER.warning(
                "Documents claimed by a concurrent dispatch",
                extra={"project_id": str(project_id), "claimed": claimed, "requested": len(document_ids)}
            )
            raise ValidationError("Documents are already processing")

        await self.batches.create(
            request_id=request_id,
            project_id=project_id,
            document_ids=[str(d) for d in document_ids],
            priorities=weights.model_dump(),
            status=BatchStatus.DISPATCHING,
        )
        await self.bids.mark_processing(document_ids, request_id)
        project.status = ProjectStatus.ANALYZING
        project.analysis_queued_at = datetime.now(timezone.utc)
        if is_rerun:
            project.rerun_count = (project.rerun_count or 0) + 1
        await self.session.commit()

        inputs = self.build_inputs(project_id, request_id, document_urls, weights)

        try:
            workflow_run_id = await self.client.start_run(inputs)
        except (APIClientError, ConfigurationError) as e:
            await self._revert(project_id, request_id, document_ids, previous_status, is_rerun, str(e))
            raise DispatchError(f"Extraction service rejected the batch: {e}", original_error=e)
        except Exception as e:
            await self.session.rollback()
            await self._revert(project_id, request_id, document_ids, previous_status, is_rerun, str(e))
            raise AppError(f"Dispatch failed: {e}", original_error=e)

        await self.batches.set_status(
            request_id,
            BatchStatus.DISPATCHED,
            workflow_run_id=workflow_run_id,
            dispatched_at=datetime.now(timezone.utc),
        )
        await self.session.commit()

        LOGGER.info(
            "Dispatched extraction batch",
            extra={
                "project_id": str(project_id),
                "request_id": request_id,
                "documents": len(document_ids),
                "workflow_run_id": workflow_run_id,
            }
        )
        return DispatchResponse(
            project_id=project_id,
            request_id=request_id,
            document_count=len(document_ids),
            workflow_run_id=workflow_run_id,
            status=BatchStatus.DISPATCHED,
        )

    def build_inputs(
        self,
        project_id: UUID,
        request_id: str,
        document_urls: List[str],
        priorities: UserPriorities,
    ) -> Dict[str, Any]:
        """Workflow-run inputs keyed by the configured field ids.

        Arrays and objects travel as JSON strings. The signature seed lets
        the service sign its callback over ``"{request_id}:{timestamp}"``.
        """
        fields = settings.extraction
        timestamp = utc_timestamp()
        return {
            fields.field_document_urls: json.dumps(document_urls),
            fields.field_user_priorities: json.dumps(priorities.weights()),
            fields.field_user_notes: priorities.project_details or "",
            fields.field_project_id: str(project_id),
            fields.field_callback_url: settings.callback_url,
            fields.field_request_id: request_id,
            fields.field_timestamp: timestamp,
            fields.field_signature: sign(request_id, timestamp, settings.callback_secret),
        }

    async def _revert(
        self,
        project_id: UUID,
        request_id: str,
        document_ids: Sequence[UUID],
        previous_status: str,
        was_rerun: bool,
        error: str,
    ) -> None:
        LOGGER.error(
            "Dispatch failed, reverting batch state",
            extra={"project_id": str(project_id), "request_id": request_id, "error": error}
        )
        message = f"Dispatch failed: {error}"[:2000]
        await self.documents.revert_to_uploaded(document_ids, message)
        await self.bids.revert_to_pending(document_ids)
        await self.batches.set_status(request_id, BatchStatus.DISPATCH_FAILED, error_message=message)
        project = await self.projects.get_fresh(project_id)
        if project is not None:
            project.status = previous_status
            if was_rerun:
                project.rerun_count = max((project.rerun_count or 1) - 1, 0)
        await self.session.commit()
