"""Read schemas for workflow requests."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class WorkflowChangeRead(BaseModel):
    id: UUID
    sequence: int
    author_id: Optional[UUID]
    status: Optional[str]
    status_description: str
    comment: Optional[str]
    page_draft_version: Optional[int]
    page_live_version: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkflowRequestRead(BaseModel):
    id: UUID
    kind: str
    status: Optional[str]
    status_description: str
    author_id: Optional[UUID]
    publisher_id: Optional[UUID]
    page_id: UUID
    assigned_publisher_ids: List[UUID]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    changes: List[WorkflowChangeRead] = []

    model_config = ConfigDict(from_attributes=True)


class PendingReview(BaseModel):
    """A publication request waiting for a publisher's approval."""
    request_id: UUID
    page_id: UUID
    page_title: str
    requested_at: Optional[datetime]
    author_id: Optional[UUID]
    author_email: Optional[str]
    publisher_id: Optional[UUID]
