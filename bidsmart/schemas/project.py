"""Project and document request/response schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ProjectCreateRequest(BaseModel):
    project_name: Optional[str] = Field(None, max_length=200)
    notification_email: Optional[EmailStr] = None
    notify_on_completion: bool = False


class NotificationPreferencesRequest(BaseModel):
    notification_email: Optional[EmailStr] = Field(None, description="Where the completion email goes")
    notify_on_completion: bool = Field(..., description="Opt-in for the completion email")


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_name: str
    status: str
    notification_email: Optional[str] = None
    notify_on_completion: bool = False
    notification_sent_at: Optional[datetime] = None
    rerun_count: int = 0
    created_at: Optional[datetime] = None


class DocumentHandle(BaseModel):
    """Opaque handle returned for each registered upload."""

    document_id: UUID = Field(..., description="Correlation key for dispatch and status queries")
    bid_id: UUID
    file_name: str
    status: str


class UploadResponse(BaseModel):
    project_id: UUID
    documents: List[DocumentHandle]
