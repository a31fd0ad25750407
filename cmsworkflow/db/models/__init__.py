"""Database models for cmsworkflow."""

from cmsworkflow.db.models.member import Member
from cmsworkflow.db.models.page import Page, page_editors, page_publishers
from cmsworkflow.db.models.workflow import (
    WorkflowRequest,
    WorkflowRequestChange,
    workflow_request_publishers,
)
from cmsworkflow.db.models.notification import NotificationLog, DeliveryStatus

__all__ = [
    "Member",
    "Page",
    "page_editors",
    "page_publishers",
    "WorkflowRequest",
    "WorkflowRequestChange",
    "workflow_request_publishers",
    "NotificationLog",
    "DeliveryStatus",
]
