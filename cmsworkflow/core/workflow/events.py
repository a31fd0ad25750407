"""Notification events emitted by workflow transitions."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .states import RequestKind, WorkflowStatus


class NotificationKind(str, Enum):
    """Which transition a notification reports."""

    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    DENIED = "denied"
    AWAITING_EDIT = "awaiting_edit"
    COMMENT = "comment"


STATUS_NOTIFICATIONS = {
    WorkflowStatus.AWAITING_APPROVAL: NotificationKind.AWAITING_APPROVAL,
    WorkflowStatus.APPROVED: NotificationKind.APPROVED,
    WorkflowStatus.DENIED: NotificationKind.DENIED,
    WorkflowStatus.AWAITING_EDIT: NotificationKind.AWAITING_EDIT,
}


class NotificationEvent(BaseModel):
    """
    Everything the dispatcher needs to notify the audience of a transition.

    Events are plain data so they can be queued and dispatched after the
    transition has been committed.
    """
    kind: NotificationKind
    request_id: UUID
    request_kind: RequestKind = RequestKind.PUBLICATION
    page_id: UUID
    page_title: str
    actor_id: UUID
    author_id: Optional[UUID] = None
    publisher_ids: List[UUID] = Field(default_factory=list)
    comment: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
