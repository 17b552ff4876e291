"""Upload & stub registration for bid PDFs."""

from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.config import settings
from bidsmart.core.exceptions import AppError, ValidationError
from bidsmart.database.models import ProjectStatus
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.schemas.project import DocumentHandle, UploadResponse
from bidsmart.services.base_service import BaseService
from bidsmart.services.project_service import ProjectService
from bidsmart.services.storage_service import StorageService
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class UploadService(BaseService):
    """Stores each uploaded PDF and creates its pending document and bid stub."""

    def __init__(self, session: AsyncSession, storage_service: Optional[StorageService] = None):
        super().__init__()
        self.session = session
        self.storage = storage_service or StorageService()
        self.documents = DocumentRepository(session)
        self.bids = BidRepository(session)
        self.projects = ProjectRepository(session)
        self.project_service = ProjectService(session)

    def validate(self, project_id: UUID, user_id: UUID, files: List[Any]) -> None:
        if not files:
            raise ValidationError("At least one file is required")
        for file in files:
            name = (getattr(file, "filename", None) or "").lower()
            content_type = getattr(file, "content_type", None)
            if content_type not in PDF_CONTENT_TYPES and not name.endswith(".pdf"):
                raise ValidationError(f"Only PDF bids are accepted: {getattr(file, 'filename', '')}")
            size = getattr(file, "size", None)
            if size is not None and size > MAX_UPLOAD_BYTES:
                raise ValidationError(f"File exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)} MB: {file.filename}")

    async def run(self, project_id: UUID, user_id: UUID, files: List[Any]) -> UploadResponse:
        """Register uploads for a project.

        Args:
            project_id: Target project, owned by ``user_id``
            user_id: Internal id of the uploader
            files: Uploaded PDF files

        Returns:
            One document handle per file
        """
        project = await self.project_service.get_owned_project(project_id, user_id)
        handles: List[DocumentHandle] = []

        for file in files:
            storage_path = f"{user_id}/{project_id}/{uuid4()}.pdf"
            try:
                await self.storage.upload_file(
                    file, settings.supabase.storage_bucket, storage_path, content_type="application/pdf"
                )

                document = await self.documents.create_document(
                    project_id=project_id,
                    file_name=file.filename or "bid.pdf",
                    storage_path=storage_path,
                    file_size_bytes=getattr(file, "size", None),
                )
                bid = await self.bids.create_stub(project_id=project_id, document_id=document.id)
                await self.session.commit()

                handles.append(DocumentHandle(
                    document_id=document.id,
                    bid_id=bid.id,
                    file_name=document.file_name,
                    status=document.status,
                ))
                LOGGER.info(
                    "Registered bid document",
                    extra={"project_id": str(project_id), "document_id": str(document.id)}
                )
            except AppError:
                await self.session.rollback()
                raise
            except Exception as e:
                await self.session.rollback()
                LOGGER.error(
                    f"Failed to register upload: {e}",
                    exc_info=True,
                    extra={"project_id": str(project_id), "file_name": getattr(file, "filename", None)}
                )
                raise AppError(f"Failed to register upload {getattr(file, 'filename', '')}", original_error=e)

        if project.status == ProjectStatus.DRAFT:
            await self.projects.transition_status(
                project_id, ProjectStatus.COLLECTING_BIDS, (ProjectStatus.DRAFT,)
            )
            await self.session.commit()

        return UploadResponse(project_id=project_id, documents=handles)
