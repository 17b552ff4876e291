"""Read-only status views polled by the UI."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatusResponse(BaseModel):
    document_id: UUID
    file_name: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    confidence: Optional[str] = None
    bid_id: Optional[UUID] = None
    error: Optional[str] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    retry_count: int = 0
    stalled: bool = False


class ProjectStatusResponse(BaseModel):
    project_id: UUID
    status: str
    ready_to_compare: bool
    all_terminal: bool
    document_count: int
    successful_count: int
    failed_count: int
    status_counts: Dict[str, int]
    stalled_document_ids: List[UUID]
    notification_sent: bool
    documents: List[DocumentStatusResponse]
