"""Schemas for dispatching a batch to the extraction service."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserPriorities(BaseModel):
    """Homeowner priority weights, 1 (don't care) to 5 (very important)."""

    model_config = ConfigDict(extra="forbid")

    price: int = Field(default=3, ge=1, le=5)
    efficiency: int = Field(default=3, ge=1, le=5)
    warranty: int = Field(default=3, ge=1, le=5)
    reputation: int = Field(default=3, ge=1, le=5)
    timeline: int = Field(default=3, ge=1, le=5)
    project_details: Optional[str] = Field(default=None, max_length=5000)

    def weights(self) -> dict:
        return self.model_dump(exclude={"project_details"})


class DispatchRequest(BaseModel):
    document_ids: List[UUID] = Field(..., min_length=1, description="Document handles to analyze")
    priorities: UserPriorities = Field(default_factory=UserPriorities)


class DispatchResponse(BaseModel):
    project_id: UUID
    request_id: str
    document_count: int
    workflow_run_id: Optional[str] = None
    status: str
